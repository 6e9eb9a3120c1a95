"""Per-artifact data handed over by the bundling step and reported back by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class ExternalModuleRef:
    """A module the bundler left out of the bundle.

    ``name`` is the raw request (``lodash/fp``, ``@scope/pkg/sub``) or an
    already-normalised package name. ``origin`` is the request path of the
    importing package when the bundler could determine it.
    """

    name: str
    origin: str | None = None


@dataclass
class Artifact:
    """One compiled output: a function bundle or the whole service."""

    name: str
    output_path: Path
    external_modules: list[ExternalModuleRef] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Artifact:
        """Build from the work-order form ``{name, outputPath, externalModules}``.

        External modules may be given as plain strings or ``{name, origin}`` objects.
        """
        modules = []
        for entry in data.get("externalModules", []):
            if isinstance(entry, str):
                modules.append(ExternalModuleRef(name=entry))
            else:
                modules.append(ExternalModuleRef(name=entry["name"], origin=entry.get("origin")))
        output_path = Path(data["outputPath"])
        return cls(
            name=data.get("name") or output_path.name,
            output_path=output_path,
            external_modules=modules,
        )


class ArtifactState(Enum):
    """Packaging pipeline states. IDLE doubles as "never scheduled"."""

    IDLE = "idle"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    MANIFEST_WRITTEN = "manifest_written"
    INSTALLING = "installing"
    PRUNING = "pruning"
    RUNNING_SCRIPTS = "running_scripts"
    COPYING = "copying"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ArtifactResult:
    """Outcome of one artifact's pipeline."""

    name: str
    output_path: Path
    state: ArtifactState = ArtifactState.IDLE
    dependencies: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    exception: BaseException | None = field(default=None, repr=False)
    phases: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is ArtifactState.DONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "outputPath": str(self.output_path),
            "state": self.state.value,
            "dependencies": dict(self.dependencies),
            "error": self.error,
            "phases": self.phases,
        }
