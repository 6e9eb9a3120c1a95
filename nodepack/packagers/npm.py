"""npm backend.

Production dependencies come from ``package-lock.json`` (lockfileVersion 2
or 3) when present, otherwise from ``npm ls``. npm installs into the
staging directory, so installed modules must be copied to the artifact.
"""

from __future__ import annotations

import copy
import json
import posixpath
from pathlib import Path
from typing import Any

import structlog

from nodepack.exceptions import DependencyListingError
from nodepack.models.graph import DependencyGraph
from nodepack.packagers.base import (
    PackagerBackend,
    PackagerCapabilities,
    ProblemPolicy,
    ProblemRule,
    rebase_file_reference,
)

log = structlog.get_logger(__name__)

NPM_CAPABILITIES = PackagerCapabilities(
    lockfile_name="package-lock.json",
    copy_package_section_names=(),
    must_copy_modules=True,
)

# npm < 9 prefixes with "npm ERR!", newer releases with "npm error".
_IGNORED = ("extraneous", "missing optional", "code ELSPROBLEMS", "A complete log of this run")
_REPORTED = ("peer dep missing", "missing", "invalid: peer")

NPM_PROBLEM_RULES: tuple[ProblemRule, ...] = tuple(
    [ProblemRule(f"{prefix} {kind}", ProblemPolicy.IGNORE) for prefix in ("npm ERR!", "npm error") for kind in _IGNORED]
    + [ProblemRule(f"{prefix} {kind}", ProblemPolicy.REPORT) for prefix in ("npm ERR!", "npm error") for kind in _REPORTED]
    + [
        # continuation lines of the log file path
        ProblemRule("npm ERR!     ", ProblemPolicy.IGNORE),
        ProblemRule("npm error     ", ProblemPolicy.IGNORE),
        ProblemRule("npm WARN", ProblemPolicy.REPORT),
        ProblemRule("npm warn", ProblemPolicy.REPORT),
    ]
)

READABLE_LOCKFILE_VERSIONS = (2, 3)


def graph_from_lockfile(lockfile: dict[str, Any]) -> DependencyGraph:
    """Build a production graph from the ``packages`` section of a v2/v3 lockfile.

    Keys look like ``node_modules/a/node_modules/@s/b``. Dev-only entries
    and workspace sources (keys outside ``node_modules/``) are skipped.
    """
    tree: dict[str, Any] = {}
    for key in sorted(lockfile.get("packages", {})):
        entry = lockfile["packages"][key]
        if not key.startswith("node_modules/") or entry.get("dev"):
            continue
        names = [segment.rstrip("/") for segment in key.split("node_modules/")[1:]]
        level = tree
        for parent in names[:-1]:
            level = level.setdefault(parent, {"version": "", "dependencies": {}})["dependencies"]
        slot = level.setdefault(names[-1], {"version": "", "dependencies": {}})
        if entry.get("link") and entry.get("resolved"):
            slot["version"] = f"file:{entry['resolved']}"
        else:
            slot["version"] = entry.get("version", "")
    return DependencyGraph.from_tree(tree)


class NpmBackend(PackagerBackend):
    problem_rules = NPM_PROBLEM_RULES

    @property
    def name(self) -> str:
        return "npm"

    @property
    def executable(self) -> str:
        return "npm"

    @property
    def capabilities(self) -> PackagerCapabilities:
        return NPM_CAPABILITIES

    def read_lockfile_graph(self, root_dir: Path) -> DependencyGraph | None:
        path = root_dir / self.lockfile_name
        if not path.is_file():
            return None
        try:
            lockfile = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("npm.lockfile_unreadable", path=str(path), error=str(exc))
            return None
        version = lockfile.get("lockfileVersion")
        if version not in READABLE_LOCKFILE_VERSIONS:
            log.debug("npm.lockfile_version_unsupported", path=str(path), version=version)
            return None
        return graph_from_lockfile(lockfile)

    async def list_dependencies(self, root_dir: Path, depth: int) -> DependencyGraph:
        args = ["ls", "--omit=dev", "--json", f"--depth={depth}"]
        stdout, reported = await self._run_listing(args, root_dir)
        try:
            data = json.loads(stdout)
        except ValueError as exc:
            raise DependencyListingError(f"npm ls produced invalid JSON: {exc}", stdout=stdout) from exc
        problems = list(data.get("problems", [])) + reported
        return DependencyGraph.from_tree(data.get("dependencies"), problems)

    def rebase_lockfile(self, path_to_root: str, lockfile: dict[str, Any]) -> dict[str, Any]:
        """Rebase ``file:`` versions throughout the lockfile.

        Rebasing is applied once per relocation; a second pass prefixes
        again. The input is left untouched.
        """
        rebased = copy.deepcopy(lockfile)
        _rebase_entry(path_to_root, rebased)
        if isinstance(rebased.get("packages"), dict):
            rebased["packages"] = _rebase_package_paths(path_to_root, rebased["packages"])
        return rebased

    def parse_lockfile(self, text: str) -> dict[str, Any]:
        return json.loads(text)

    def serialize_lockfile(self, lockfile: dict[str, Any]) -> str:
        return json.dumps(lockfile, indent=2)

    async def install(self, cwd: str | Path) -> None:
        if self.options.no_install:
            return
        args = ["install", "--no-audit", "--no-fund"]
        if self.options.ignore_scripts:
            args.append("--ignore-scripts")
        await self._run(args, cwd)

    async def prune(self, cwd: str | Path) -> None:
        if self.options.no_install:
            return
        await self._run(["prune", "--no-audit", "--no-fund"], cwd)


def _rebase_entry(path_to_root: str, entry: dict[str, Any]) -> None:
    if isinstance(entry.get("version"), str):
        entry["version"] = rebase_file_reference(path_to_root, entry["version"])
    for section in ("dependencies", "packages"):
        children = entry.get(section)
        if not isinstance(children, dict):
            continue
        for name, child in children.items():
            if isinstance(child, dict):
                _rebase_entry(path_to_root, child)
            elif isinstance(child, str):
                children[name] = rebase_file_reference(path_to_root, child)


def _rebase_package_paths(path_to_root: str, packages: dict[str, Any]) -> dict[str, Any]:
    """Move ``packages`` keys and link targets that live outside ``node_modules``.

    Keys like ``../mymodule`` or ``packages/app`` are paths relative to the
    lockfile; installed ``node_modules/...`` entries are reinstalled in place.
    """
    rebased: dict[str, Any] = {}
    for key, entry in packages.items():
        if key and not key.startswith("node_modules/"):
            key = _rebase_path(path_to_root, key)
        if isinstance(entry, dict) and entry.get("link") and isinstance(entry.get("resolved"), str):
            entry["resolved"] = _rebase_path(path_to_root, entry["resolved"])
        rebased[key] = entry
    return rebased


def _rebase_path(path_to_root: str, path: str) -> str:
    return posixpath.normpath(posixpath.join(path_to_root, path.replace("\\", "/")))
