"""Runtime vs development dependency validation."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from nodepack.exceptions import DevDependencyError
from nodepack.models.graph import ResolvedDependencySet
from nodepack.resolver import Resolution

log = structlog.get_logger(__name__)

# Packages the deploy target's runtime already provides. Declaring them as
# devDependencies is the usual setup, so they are skipped instead of failing.
RUNTIME_PROVIDED_PACKAGES = frozenset({"aws-sdk"})
RUNTIME_PROVIDED_SCOPES = ("@aws-sdk/",)


def is_runtime_provided(name: str) -> bool:
    return name in RUNTIME_PROVIDED_PACKAGES or name.startswith(RUNTIME_PROVIDED_SCOPES)


class DependencyValidator:
    """Turn a :class:`Resolution` into the final dependency set.

    A missing module declared in ``devDependencies`` is a runtime/dev
    mismatch and fails the artifact unless the runtime provides it. Other
    missing modules are kept without a version.
    """

    def __init__(
        self,
        project_manifest: Mapping[str, Any],
        force_exclude: Iterable[str] = (),
    ) -> None:
        self._dev: Mapping[str, str] = project_manifest.get("devDependencies") or {}
        self._excluded = set(force_exclude)

    def validate(self, resolution: Resolution, artifact: str | None = None) -> ResolvedDependencySet:
        dependencies = dict(resolution.dependencies)
        offending: list[str] = []
        for module in resolution.missing:
            name = module.name
            if name in self._excluded:
                continue
            if name in self._dev:
                if is_runtime_provided(name):
                    log.info("validator.runtime_provided_skipped", package=name, artifact=artifact)
                    continue
                log.error("validator.dev_dependency", package=name, artifact=artifact, origin=module.origin)
                offending.append(name)
                continue
            log.warning("validator.version_unknown", package=name, artifact=artifact, origin=module.origin)
            dependencies[name] = ""
        if offending:
            raise DevDependencyError(sorted(offending), artifact)
        return ResolvedDependencySet(dependencies)
