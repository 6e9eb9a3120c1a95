from nodepack.models.artifact import (
    Artifact,
    ArtifactResult,
    ArtifactState,
    ExternalModuleRef,
)
from nodepack.models.graph import DependencyGraph, DependencyNode, ResolvedDependencySet

__all__ = [
    "Artifact",
    "ArtifactResult",
    "ArtifactState",
    "DependencyGraph",
    "DependencyNode",
    "ExternalModuleRef",
    "ResolvedDependencySet",
]
