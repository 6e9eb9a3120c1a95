"""Custom exceptions for nodepack."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nodepack.models.artifact import ArtifactResult


class NodepackError(Exception):
    """Base exception for all packaging errors."""


class ConfigurationError(NodepackError):
    """Raised when the packaging configuration is invalid."""


class PackagerNotFoundError(ConfigurationError):
    """Raised when the configured packager identifier is not registered."""

    def __init__(self, packager_id: str, known: list[str]):
        self.packager_id = packager_id
        self.known = known
        super().__init__(
            f"Could not find packager '{packager_id}' (available: {', '.join(known) or 'none'})"
        )


class SpawnError(NodepackError):
    """Raised when a package manager process cannot be started or exits non-zero."""

    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int | None = None,
    ):
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        return f"{base}\nstdout: {self.stdout.strip()}\nstderr: {self.stderr.strip()}"


class DependencyListingError(SpawnError):
    """Raised when the dependency listing reports a problem outside the benign set."""


class DevDependencyError(NodepackError):
    """Raised when a runtime dependency is only declared in devDependencies."""

    def __init__(self, packages: list[str], artifact: str | None = None):
        self.packages = packages
        self.artifact = artifact
        where = f" in artifact '{artifact}'" if artifact else ""
        super().__init__(
            f"Runtime dependencies found in devDependencies{where}: {', '.join(packages)}. "
            "Move them to dependencies or use forceExclude to explicitly exclude them."
        )


class PackagingRunError(NodepackError):
    """Raised after a run settles when at least one artifact failed."""

    def __init__(self, failures: list[ArtifactResult], results: list[ArtifactResult] | None = None):
        self.failures = failures
        self.results = results or list(failures)
        lines = [f"{len(failures)} artifact(s) failed to package:"]
        for result in failures:
            lines.append(f"  {result.name}: {result.error}")
        super().__init__("\n".join(lines))
