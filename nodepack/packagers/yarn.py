"""Yarn backend (classic and berry).

Yarn specific packagerOptions (default):
    noInstall (false) - Skip install and prune
    ignoreScripts (false) - Do not execute lifecycle scripts during install
    noNonInteractive (false) - Do not pass --non-interactive (classic only)
    noFrozenLockfile (false) - Do not require an up-to-date yarn.lock
    networkConcurrency (unset) - Number of concurrent network requests
    copyPackageSectionNames (["resolutions"]) - Manifest sections copied verbatim
"""

from __future__ import annotations

import asyncio
import fnmatch
import json
import re
from pathlib import Path
from typing import Any

import structlog

from nodepack.config import PackagerOptions
from nodepack.exceptions import SpawnError
from nodepack.models.graph import DependencyGraph
from nodepack.packagers.base import (
    PackagerBackend,
    PackagerCapabilities,
    ProblemPolicy,
    ProblemRule,
)

log = structlog.get_logger(__name__)

DEFAULT_COPY_SECTIONS = ("resolutions",)

YARN_PROBLEM_RULES: tuple[ProblemRule, ...] = (
    ProblemRule("warning", ProblemPolicy.REPORT),
    ProblemRule("info", ProblemPolicy.IGNORE),
)

# pkg@file:../x, "pkg@../x", pkg@./x  ->  captures the relative path
_FILE_VERSION = re.compile(r'([^"/]@(?:file:)?)((?:\./|\.\./).*?)(?=[":,])')


def split_name_version(spec: str) -> tuple[str, str]:
    """``@scope/pkg@1.2.0`` -> (``@scope/pkg``, ``1.2.0``)."""
    idx = spec.rfind("@")
    if idx <= 0:
        return spec, ""
    return spec[:idx], spec[idx + 1:]


def convert_trees(trees: list[dict[str, Any]]) -> dict[str, Any]:
    """Convert ``yarn list --json`` trees into the nested graph form."""
    result: dict[str, Any] = {}
    for tree in trees or []:
        name, version = split_name_version(tree.get("name", ""))
        if not name:
            continue
        result[name] = {
            "version": version,
            "dependencies": convert_trees(tree.get("children", [])),
        }
    return result


def find_workspace_root(cwd: str | Path) -> Path | None:
    """Return the nearest directory whose package.json declares *cwd* as a workspace."""
    start = Path(cwd).resolve()
    for candidate in (start, *start.parents):
        manifest = candidate / "package.json"
        if not manifest.is_file():
            continue
        try:
            data = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            continue
        workspaces = data.get("workspaces")
        if isinstance(workspaces, dict):
            workspaces = workspaces.get("packages")
        if not workspaces:
            continue
        if candidate == start:
            return candidate
        relative = start.relative_to(candidate).as_posix()
        if any(_matches_workspace(relative, pattern) for pattern in workspaces):
            return candidate
    return None


def _matches_workspace(relative: str, pattern: str) -> bool:
    """Glob match by path segment: ``*`` stays within one segment, ``**`` spans any."""
    return _match_segments(relative.split("/"), pattern.removeprefix("./").strip("/").split("/"))


def _match_segments(parts: list[str], pattern: list[str]) -> bool:
    if not pattern:
        return not parts
    if pattern[0] == "**":
        return any(_match_segments(parts[i:], pattern[1:]) for i in range(len(parts) + 1))
    if not parts or not fnmatch.fnmatchcase(parts[0], pattern[0]):
        return False
    return _match_segments(parts[1:], pattern[1:])


def is_berry_version(version: str) -> bool:
    match = re.match(r"\s*(\d+)", version or "")
    return bool(match) and int(match.group(1)) > 1


class YarnBackend(PackagerBackend):
    problem_rules = YARN_PROBLEM_RULES

    def __init__(self, options: PackagerOptions | None = None) -> None:
        super().__init__(options)
        sections = self.options.copy_package_section_names
        self._capabilities = PackagerCapabilities(
            lockfile_name="yarn.lock",
            copy_package_section_names=tuple(sections) if sections is not None else DEFAULT_COPY_SECTIONS,
            must_copy_modules=False,
        )
        self._version: str | None = None
        self._version_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "yarn"

    @property
    def executable(self) -> str:
        return "yarn"

    @property
    def capabilities(self) -> PackagerCapabilities:
        return self._capabilities

    async def get_version(self, cwd: str | Path) -> str:
        """``yarn -v``, cached for the lifetime of the backend."""
        async with self._version_lock:
            if self._version is None:
                try:
                    output = await self._run(["-v"], cwd)
                    self._version = output.stdout.strip()
                except SpawnError as err:
                    self._version = err.stdout.strip()
                log.debug("yarn.version", version=self._version)
            return self._version

    async def list_dependencies(self, root_dir: Path, depth: int) -> DependencyGraph:
        cwd = find_workspace_root(root_dir) or root_dir
        args = ["list", f"--depth={depth}", "--json", "--production"]
        stdout, reported = await self._run_listing(args, cwd)
        tree: dict[str, Any] | None = None
        problems = list(reported)
        for line in stdout.splitlines():
            try:
                parsed = json.loads(line)
            except ValueError:
                continue
            if not isinstance(parsed, dict):
                continue
            if parsed.get("type") == "tree" and tree is None:
                tree = parsed
            elif parsed.get("type") in ("warning", "error"):
                problems.append(str(parsed.get("data", "")))
        trees = (tree or {}).get("data", {}).get("trees", [])
        return DependencyGraph.from_tree(convert_trees(trees), problems)

    def rebase_lockfile(self, path_to_root: str, lockfile: str) -> str:
        def _rebase(match: re.Match[str]) -> str:
            return match.group(1) + f"{path_to_root}/{match.group(2)}".replace("\\", "/")

        return _FILE_VERSION.sub(_rebase, lockfile)

    def parse_lockfile(self, text: str) -> str:
        return text

    def serialize_lockfile(self, lockfile: str) -> str:
        return lockfile

    async def install(self, cwd: str | Path) -> None:
        if self.options.no_install:
            return
        berry = is_berry_version(await self.get_version(cwd))
        args = ["install"]
        if not self.options.no_non_interactive and not berry:
            args.append("--non-interactive")
        if not self.options.no_frozen_lockfile:
            args.append("--immutable" if berry else "--frozen-lockfile")
        if self.options.ignore_scripts:
            args.append("--ignore-scripts")
        if self.options.network_concurrency:
            args.extend(["--network-concurrency", str(self.options.network_concurrency)])
        await self._run(args, cwd)

    async def prune(self, cwd: str | Path) -> None:
        # yarn install prunes extraneous packages itself
        await self.install(cwd)
