"""Dependency resolver: map external modules to installable version specs."""

from __future__ import annotations

import json
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

import structlog

from nodepack.config import IncludeModules
from nodepack.externals import normalize_externals, package_name
from nodepack.models.artifact import ExternalModuleRef
from nodepack.models.graph import DependencyGraph

log = structlog.get_logger(__name__)


class ManifestLookup(Protocol):
    """Returns the installed ``package.json`` of a package, or None if absent."""

    def __call__(self, package: str) -> Mapping[str, Any] | None: ...


class NodeModulesManifestLookup:
    """Reads ``<node_modules_dir>/<package>/package.json``."""

    def __init__(self, node_modules_dir: str | Path) -> None:
        self.node_modules_dir = Path(node_modules_dir)

    def __call__(self, package: str) -> Mapping[str, Any] | None:
        path = self.node_modules_dir / package / "package.json"
        if not path.is_file():
            return None
        return json.loads(path.read_text(encoding="utf-8"))


@dataclass
class Resolution:
    """Resolver output before validation.

    ``missing`` holds modules found neither in the manifest dependencies
    nor in the graph, and not force-included.
    """

    dependencies: dict[str, str] = field(default_factory=dict)
    missing: list[ExternalModuleRef] = field(default_factory=list)


class DependencyResolver:
    """
    Resolve external modules of one artifact against the project manifest
    and the production dependency graph.

    Lookup order per package:
      1. ``dependencies`` of the project manifest (declared spec is kept)
      2. the dependency graph, origin subtree first, then breadth-first
      3. ``forceInclude`` without a version (left to the installer)
    Anything else is reported as missing for the validator.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        project_manifest: Mapping[str, Any],
        includes: IncludeModules | None = None,
        manifest_lookup: ManifestLookup | None = None,
    ) -> None:
        self.graph = graph
        self.includes = includes or IncludeModules()
        self.manifest_lookup = manifest_lookup
        self._declared: Mapping[str, str] = project_manifest.get("dependencies") or {}

    def resolve(self, modules: Iterable[ExternalModuleRef]) -> Resolution:
        excluded = set(self.includes.force_exclude)
        forced = [package_name(name) for name in self.includes.force_include]

        queue: deque[ExternalModuleRef] = deque(
            m for m in normalize_externals(modules) if m.name not in excluded
        )
        queued = {m.name for m in queue}
        for name in forced:
            if name not in excluded and name not in queued:
                queue.append(ExternalModuleRef(name=name))
                queued.add(name)

        result = Resolution()
        done: set[str] = set()
        while queue:
            module = queue.popleft()
            name = module.name
            if name in done or name in excluded:
                continue
            done.add(name)

            declared = self._declared.get(name)
            if declared is not None:
                result.dependencies[name] = declared
                for peer in self._required_peers(name):
                    if peer not in done and peer not in excluded:
                        queue.append(ExternalModuleRef(name=peer, origin=name))
                continue

            node = self.graph.find(name, prefer=module.origin)
            if node is not None and node.version:
                log.debug("resolver.transitive", package=name, version=node.version, origin=module.origin)
                result.dependencies[name] = node.version
            elif name in forced:
                log.warning("resolver.forced_unversioned", package=name)
                result.dependencies[name] = ""
            else:
                result.missing.append(module)
        return result

    def _required_peers(self, name: str) -> list[str]:
        """Non-optional peer dependencies declared by the installed package."""
        if self.manifest_lookup is None:
            return []
        try:
            manifest = self.manifest_lookup(name)
        except (OSError, ValueError) as exc:
            log.warning("resolver.peer_check_failed", package=name, error=str(exc))
            return []
        if not manifest:
            log.debug("resolver.peer_manifest_absent", package=name)
            return []
        peers = manifest.get("peerDependencies") or {}
        meta = manifest.get("peerDependenciesMeta") or {}
        required = [peer for peer in peers if not (meta.get(peer) or {}).get("optional")]
        if required:
            log.info("resolver.adding_peers", package=name, peers=required)
        return required
