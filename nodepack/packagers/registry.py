"""Packager registry: maps a configured packager id to a backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import structlog

from nodepack.config import PackagerOptions
from nodepack.exceptions import PackagerNotFoundError
from nodepack.packagers.base import PackagerBackend

log = structlog.get_logger(__name__)


@dataclass
class BackendDescriptor:
    """Backend registration entry."""

    name: str
    description: str
    factory: Callable[[PackagerOptions], PackagerBackend]


class BackendRegistry:
    """Backend registration center."""

    def __init__(self) -> None:
        self._backends: dict[str, BackendDescriptor] = {}

    def register(self, descriptor: BackendDescriptor) -> None:
        self._backends[descriptor.name] = descriptor
        log.debug("registry.registered", packager=descriptor.name)

    def get(self, name: str) -> BackendDescriptor | None:
        return self._backends.get(name)

    def list_all(self) -> list[BackendDescriptor]:
        return list(self._backends.values())

    def create(self, name: str, options: PackagerOptions | None = None) -> PackagerBackend:
        """Instantiate the backend registered as *name*.

        Raises ``PackagerNotFoundError`` for unknown ids.
        """
        descriptor = self._backends.get(name)
        if descriptor is None:
            log.error("registry.unknown_packager", packager=name)
            raise PackagerNotFoundError(name, sorted(self._backends))
        return descriptor.factory(options or PackagerOptions())


def create_default_registry() -> BackendRegistry:
    """Create a registry with npm and yarn registered."""
    from nodepack.packagers.npm import NpmBackend
    from nodepack.packagers.yarn import YarnBackend

    registry = BackendRegistry()
    registry.register(BackendDescriptor(name="npm", description="npm CLI", factory=NpmBackend))
    registry.register(
        BackendDescriptor(name="yarn", description="Yarn classic and berry", factory=YarnBackend)
    )
    return registry
