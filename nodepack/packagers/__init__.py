"""Package manager backends."""

from nodepack.packagers.base import PackagerBackend, PackagerCapabilities
from nodepack.packagers.npm import NpmBackend
from nodepack.packagers.registry import BackendRegistry, create_default_registry
from nodepack.packagers.yarn import YarnBackend

__all__ = [
    "BackendRegistry",
    "NpmBackend",
    "PackagerBackend",
    "PackagerCapabilities",
    "YarnBackend",
    "create_default_registry",
]
