"""Test doubles for nodepack: use in orchestrator / integration tests.

Usage::

    from nodepack.testing import FakeBackend

    backend = FakeBackend()                                  # empty graph, npm-like
    backend = FakeBackend(tree={"Y": {"version": "1.0.0"}})  # graph from a nested tree
    backend = FakeBackend(fail_on={"install": SpawnError("boom")})
"""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path
from typing import Any

from nodepack.models.graph import DependencyGraph
from nodepack.packagers.base import PackagerBackend, PackagerCapabilities
from nodepack.packagers.npm import NpmBackend

FAKE_CAPABILITIES = PackagerCapabilities(lockfile_name="fake-lock.json", must_copy_modules=True)


class FakeBackend(PackagerBackend):
    """Backend that never spawns processes.

    ``install`` materialises ``node_modules/<name>/package.json`` for every
    dependency of the manifest in *cwd*, so copy steps have something to
    copy. Every call is recorded in :attr:`calls` as ``(operation, cwd)``.
    """

    def __init__(
        self,
        *,
        tree: dict[str, Any] | None = None,
        problems: list[str] | None = None,
        capabilities: PackagerCapabilities = FAKE_CAPABILITIES,
        fail_on: dict[str, Exception] | None = None,
        delay: float = 0.0,
    ) -> None:
        super().__init__()
        self._tree = tree or {}
        self._problems = problems or []
        self._capabilities = capabilities
        self._fail_on = fail_on or {}
        self._delay = delay
        self.calls: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0

    @property
    def name(self) -> str:
        return "fake"

    @property
    def executable(self) -> str:
        return "fake"

    @property
    def capabilities(self) -> PackagerCapabilities:
        return self._capabilities

    async def list_dependencies(self, root_dir: Path, depth: int) -> DependencyGraph:
        await self._step("list", root_dir)
        return DependencyGraph.from_tree(self._tree, self._problems)

    def rebase_lockfile(self, path_to_root: str, lockfile: Any) -> Any:
        return NpmBackend().rebase_lockfile(path_to_root, lockfile)

    def parse_lockfile(self, text: str) -> Any:
        return json.loads(text)

    def serialize_lockfile(self, lockfile: Any) -> str:
        return json.dumps(lockfile, indent=2)

    async def install(self, cwd: str | Path) -> None:
        await self._step("install", cwd)
        manifest = json.loads((Path(cwd) / "package.json").read_text(encoding="utf-8"))
        for name, spec in manifest.get("dependencies", {}).items():
            target = Path(cwd) / "node_modules" / name
            target.mkdir(parents=True, exist_ok=True)
            (target / "package.json").write_text(
                json.dumps({"name": name, "version": spec or "0.0.0"}), encoding="utf-8"
            )

    async def prune(self, cwd: str | Path) -> None:
        """Remove installed packages the manifest in *cwd* no longer lists."""
        await self._step("prune", cwd)
        node_modules = Path(cwd) / "node_modules"
        if not node_modules.is_dir():
            return
        manifest = json.loads((Path(cwd) / "package.json").read_text(encoding="utf-8"))
        keep = set(manifest.get("dependencies", {}))
        for entry in node_modules.iterdir():
            candidates = list(entry.iterdir()) if entry.name.startswith("@") else [entry]
            for package in candidates:
                name = package.relative_to(node_modules).as_posix()
                if name not in keep:
                    shutil.rmtree(package)

    async def run_scripts(self, cwd: str | Path, script_names: list[str]) -> None:
        for script in script_names:
            await self._step(f"run:{script}", cwd)

    def operations(self, cwd: str | Path | None = None) -> list[str]:
        """Recorded operation names, optionally only those run in *cwd*."""
        return [op for op, where in self.calls if cwd is None or where == str(cwd)]

    async def _step(self, operation: str, cwd: str | Path) -> None:
        self.calls.append((operation, str(cwd)))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
            error = self._fail_on.get(operation)
            if error is not None:
                raise error
        finally:
            self.active -= 1
