"""nodepack: dependency packaging engine for bundled Node.js artifacts."""

__version__ = "0.1.0"

from nodepack.config import Configuration, IncludeModules, PackagerOptions
from nodepack.manifest import ManifestAssembler
from nodepack.models.artifact import Artifact, ArtifactResult, ArtifactState, ExternalModuleRef
from nodepack.models.graph import DependencyGraph, ResolvedDependencySet
from nodepack.orchestrator import PackagingOrchestrator
from nodepack.packagers.base import PackagerBackend, PackagerCapabilities
from nodepack.packagers.registry import BackendRegistry, create_default_registry
from nodepack.resolver import DependencyResolver
from nodepack.validator import DependencyValidator

__all__ = [
    "Artifact",
    "ArtifactResult",
    "ArtifactState",
    "BackendRegistry",
    "Configuration",
    "DependencyGraph",
    "DependencyResolver",
    "DependencyValidator",
    "ExternalModuleRef",
    "IncludeModules",
    "ManifestAssembler",
    "PackagerBackend",
    "PackagerCapabilities",
    "PackagerOptions",
    "PackagingOrchestrator",
    "ResolvedDependencySet",
    "create_default_registry",
]
