"""Package manager backend interface and shared helpers."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import structlog

from nodepack.config import PackagerOptions
from nodepack.core.process import ProcessOutput, platform_command, spawn_process
from nodepack.exceptions import DependencyListingError, SpawnError
from nodepack.models.graph import DependencyGraph

log = structlog.get_logger(__name__)

_FILE_REFERENCE = re.compile(r"^file:[^/]{2}")


class ProblemPolicy(Enum):
    """What to do with a stderr line of a failed dependency listing."""

    IGNORE = "ignore"  # benign, dropped silently
    REPORT = "report"  # benign, surfaced through DependencyGraph.problems


@dataclass(frozen=True)
class ProblemRule:
    prefix: str
    policy: ProblemPolicy


@dataclass(frozen=True)
class PackagerCapabilities:
    """Static description of a backend."""

    lockfile_name: str
    copy_package_section_names: tuple[str, ...] = ()
    must_copy_modules: bool = True


def classify_problems(stderr: str, rules: tuple[ProblemRule, ...]) -> tuple[list[str], list[str]]:
    """Split *stderr* into ``(fatal, reported)`` lines using the first matching rule.

    Lines that match no rule are fatal. Blank lines are skipped.
    """
    fatal: list[str] = []
    reported: list[str] = []
    for line in stderr.splitlines():
        if not line.strip():
            continue
        rule = next((r for r in rules if line.startswith(r.prefix)), None)
        if rule is None:
            fatal.append(line)
        elif rule.policy is ProblemPolicy.REPORT:
            reported.append(line)
    return fatal, reported


def rebase_file_reference(path_to_root: str, version: str) -> str:
    """Prefix a relative ``file:`` spec with *path_to_root*; other specs pass through."""
    if isinstance(version, str) and _FILE_REFERENCE.match(version):
        return f"file:{path_to_root}/{version[len('file:'):]}".replace("\\", "/")
    return version


class PackagerBackend(ABC):
    """
    Abstract base class for package manager backends.
    A backend lists production dependencies, installs and prunes them,
    and runs package scripts, always through the manager's own CLI.
    """

    #: Stderr classification applied when the listing command exits non-zero.
    problem_rules: tuple[ProblemRule, ...] = ()

    def __init__(self, options: PackagerOptions | None = None) -> None:
        self.options = options or PackagerOptions()

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier, e.g. 'npm', 'yarn'."""
        ...

    @property
    @abstractmethod
    def executable(self) -> str:
        """Manager executable without platform suffix."""
        ...

    @property
    @abstractmethod
    def capabilities(self) -> PackagerCapabilities: ...

    @property
    def lockfile_name(self) -> str:
        return self.capabilities.lockfile_name

    @property
    def copy_package_section_names(self) -> tuple[str, ...]:
        return self.capabilities.copy_package_section_names

    @property
    def must_copy_modules(self) -> bool:
        return self.capabilities.must_copy_modules

    # ── dependency listing ──────────────────────────────────────────────

    async def get_prod_dependencies(self, root_dir: str | Path, depth: int = 1) -> DependencyGraph:
        """Return the production dependency graph of the project at *root_dir*.

        A readable lockfile is parsed directly. Otherwise the manager's
        listing command runs, bounded to *depth* levels.
        """
        graph = self.read_lockfile_graph(Path(root_dir))
        if graph is not None:
            log.debug("packager.lockfile_graph", packager=self.name, root=str(root_dir))
            return graph
        return await self.list_dependencies(Path(root_dir), depth)

    def read_lockfile_graph(self, root_dir: Path) -> DependencyGraph | None:
        """Build the graph from a lockfile at *root_dir*, or None if not possible."""
        return None

    @abstractmethod
    async def list_dependencies(self, root_dir: Path, depth: int) -> DependencyGraph: ...

    async def _run_listing(self, args: list[str], cwd: Path) -> tuple[str, list[str]]:
        """Run a listing command, tolerating benign failures.

        Returns ``(stdout, reported_problems)``.
        """
        try:
            output = await self._run(args, cwd)
            return output.stdout, []
        except SpawnError as err:
            fatal, reported = classify_problems(err.stderr, self.problem_rules)
            if fatal or not err.stdout.strip():
                raise DependencyListingError(
                    f"{self.name} dependency listing failed"
                    + (f": {fatal[0]}" if fatal else " without output"),
                    stdout=err.stdout,
                    stderr=err.stderr,
                    returncode=err.returncode,
                ) from err
            return err.stdout, reported

    # ── lockfiles ───────────────────────────────────────────────────────

    @abstractmethod
    def rebase_lockfile(self, path_to_root: str, lockfile: Any) -> Any:
        """Return *lockfile* with relative ``file:`` references prefixed by *path_to_root*."""
        ...

    @abstractmethod
    def parse_lockfile(self, text: str) -> Any: ...

    @abstractmethod
    def serialize_lockfile(self, lockfile: Any) -> str: ...

    # ── install / prune / scripts ───────────────────────────────────────

    @abstractmethod
    async def install(self, cwd: str | Path) -> None: ...

    @abstractmethod
    async def prune(self, cwd: str | Path) -> None: ...

    async def run_scripts(self, cwd: str | Path, script_names: list[str]) -> None:
        """Run package scripts one after another; the first failure stops the rest."""
        for script in script_names:
            await self._run(["run", script], cwd)

    async def _run(self, args: list[str], cwd: str | Path) -> ProcessOutput:
        return await spawn_process(platform_command(self.executable), args, cwd)
