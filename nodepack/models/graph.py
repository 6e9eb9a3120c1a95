"""Dependency graph built from a package manager listing or lockfile."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

# Upper bound on nodes visited by a single lookup. Listings produced by
# ``npm ls --depth=N`` stay far below this even for large services.
MAX_VISITS = 200_000


@dataclass
class DependencyNode:
    """A package occurrence in the tree. ``children`` index into the graph arena."""

    name: str
    version: str
    children: list[int] = field(default_factory=list)


class DependencyGraph:
    """Arena of :class:`DependencyNode` with named roots.

    Read-only once built. ``problems`` carries non-fatal warnings reported
    by the package manager while listing.
    """

    def __init__(self, problems: Iterable[str] | None = None) -> None:
        self._nodes: list[DependencyNode] = []
        self._roots: dict[str, int] = {}
        self.problems: list[str] = list(problems or [])

    @classmethod
    def from_tree(
        cls,
        dependencies: Mapping[str, Any] | None,
        problems: Iterable[str] | None = None,
    ) -> DependencyGraph:
        """Build from the nested ``{name: {"version": ..., "dependencies": {...}}}`` form.

        Mapping entries that are reached more than once (shared or cyclic
        input) map to a single node, so construction always terminates.
        """
        graph = cls(problems=problems)
        node_by_entry: dict[int, int] = {}
        queue: deque[tuple[int | None, str, Any]] = deque(
            (None, name, entry) for name, entry in (dependencies or {}).items()
        )
        while queue:
            parent, name, entry = queue.popleft()
            idx = node_by_entry.get(id(entry)) if isinstance(entry, Mapping) else None
            if idx is None:
                idx = len(graph._nodes)
                if isinstance(entry, Mapping):
                    node_by_entry[id(entry)] = idx
                    version = entry.get("version")
                    graph._nodes.append(DependencyNode(name, version if isinstance(version, str) else ""))
                    for child_name, child in (entry.get("dependencies") or {}).items():
                        queue.append((idx, child_name, child))
                else:
                    # Tolerate the flat ``{"name": "1.2.3"}`` shape.
                    graph._nodes.append(DependencyNode(name, entry if isinstance(entry, str) else ""))
            if parent is None:
                graph._roots.setdefault(name, idx)
            else:
                graph._nodes[parent].children.append(idx)
        return graph

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, name: object) -> bool:
        return name in self._roots

    @property
    def root_names(self) -> list[str]:
        return list(self._roots)

    def root(self, name: str) -> DependencyNode | None:
        idx = self._roots.get(name)
        return self._nodes[idx] if idx is not None else None

    def find(self, name: str, prefer: str | None = None) -> DependencyNode | None:
        """Breadth-first search for the shallowest versioned node called *name*.

        An unversioned match is returned only when no versioned one exists.

        When *prefer* names a root, its subtree is searched first. Visited
        nodes are keyed by ``(name, version)`` and the walk stops after
        ``MAX_VISITS`` nodes, so malformed or cyclic graphs terminate.
        """
        if prefer is not None and prefer in self._roots:
            hit = self._bfs(name, [self._roots[prefer]])
            if hit is not None and hit.version:
                return hit
        return self._bfs(name, list(self._roots.values()))

    def _bfs(self, name: str, start: list[int]) -> DependencyNode | None:
        visited: set[tuple[str, str]] = set()
        queue = deque(start)
        visits = 0
        unversioned: DependencyNode | None = None
        while queue and visits < MAX_VISITS:
            node = self._nodes[queue.popleft()]
            key = (node.name, node.version)
            if key in visited:
                continue
            visited.add(key)
            visits += 1
            if node.name == name:
                if node.version:
                    return node
                # unmet entries (``"missing": true``) carry no version
                unversioned = unversioned or node
            queue.extend(node.children)
        return unversioned

    def to_tree(self) -> dict[str, Any]:
        """Render back to the nested form, cutting repeated ``(name, version)`` branches."""

        def render(idx: int, seen: frozenset[tuple[str, str]]) -> dict[str, Any]:
            node = self._nodes[idx]
            key = (node.name, node.version)
            children: dict[str, Any] = {}
            if key not in seen:
                for child in node.children:
                    children.setdefault(self._nodes[child].name, render(child, seen | {key}))
            return {"version": node.version, "dependencies": children}

        return {name: render(idx, frozenset()) for name, idx in self._roots.items()}


class ResolvedDependencySet(Mapping[str, str]):
    """Immutable ``name -> version spec`` mapping, iterated in name order."""

    def __init__(self, items: Mapping[str, str] | Iterable[tuple[str, str]] = ()) -> None:
        self._data: dict[str, str] = dict(sorted(dict(items).items()))

    def __getitem__(self, name: str) -> str:
        return self._data[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ResolvedDependencySet({self._data!r})"

    def to_dict(self) -> dict[str, str]:
        return dict(self._data)
