"""Packaging orchestrator: per-artifact pipeline over a bounded worker pool."""

from __future__ import annotations

import asyncio
import json
import shutil
from collections import deque
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog

from nodepack.config import Configuration
from nodepack.exceptions import ConfigurationError, PackagingRunError
from nodepack.manifest import ManifestAssembler
from nodepack.models.artifact import Artifact, ArtifactResult, ArtifactState
from nodepack.models.graph import DependencyGraph, ResolvedDependencySet
from nodepack.packagers.base import PackagerBackend
from nodepack.packagers.registry import BackendRegistry, create_default_registry
from nodepack.progress import PhaseProgress, ProgressTracker
from nodepack.resolver import DependencyResolver, ManifestLookup, NodeModulesManifestLookup
from nodepack.validator import DependencyValidator

log = structlog.get_logger(__name__)

DEFAULT_LISTING_DEPTH = 1


class PackagingOrchestrator:
    """
    Package the external modules of compiled artifacts.

    Per artifact:
        RESOLVING -> VALIDATING -> MANIFEST_WRITTEN -> INSTALLING -> PRUNING
        -> RUNNING_SCRIPTS -> COPYING -> DONE   (FAILED from any step)

    Artifacts run on ``config.concurrency`` workers. After the first failure
    no new artifact is started; running ones settle before the run raises
    :class:`PackagingRunError`.
    """

    def __init__(
        self,
        config: Configuration,
        project_dir: str | Path,
        *,
        backend: PackagerBackend | None = None,
        registry: BackendRegistry | None = None,
        work_dir: str | Path | None = None,
        service_name: str | None = None,
        manifest_lookup: ManifestLookup | None = None,
        listing_depth: int = DEFAULT_LISTING_DEPTH,
    ) -> None:
        self.config = config
        self.project_dir = Path(project_dir).resolve()
        # Unknown packager ids fail here, before any I/O.
        self.backend = backend or (registry or create_default_registry()).create(
            config.packager, config.packager_options
        )
        self.work_dir = Path(work_dir).resolve() if work_dir else self.project_dir / ".nodepack"
        self._service_name = service_name
        self.manifest_lookup = manifest_lookup or NodeModulesManifestLookup(
            config.node_modules_dir(self.project_dir)
        )
        self.listing_depth = listing_depth

    @property
    def package_json_path(self) -> Path:
        return self.config.package_json_path(self.project_dir)

    # ── entry points ────────────────────────────────────────────────────

    async def run(
        self,
        artifacts: list[Artifact],
        *,
        skip_compile: bool = False,
        out_of_band_dependencies: bool = False,
    ) -> list[ArtifactResult]:
        """Package every artifact and return one result per artifact, in input order.

        ``out_of_band_dependencies`` marks deploy targets that install
        dependencies themselves; installed modules are then not copied.
        """
        results = [ArtifactResult(name=a.name, output_path=a.output_path) for a in artifacts]
        if not self.config.enabled or skip_compile:
            log.info(
                "orchestrator.disabled",
                reason="compile skipped" if skip_compile else "includeModules disabled",
            )
            for result in results:
                result.state = ArtifactState.DONE
            return results

        self._check_unique_names(artifacts)
        project_manifest = self.load_project_manifest()
        graph = await self.load_dependency_graph()

        pending = deque(zip(artifacts, results))
        stop = asyncio.Event()

        async def worker() -> None:
            while pending and not stop.is_set():
                artifact, result = pending.popleft()
                await self._package_artifact(
                    artifact, result, graph, project_manifest, out_of_band_dependencies
                )
                if result.state is ArtifactState.FAILED:
                    stop.set()

        workers = min(self.config.concurrency, len(artifacts))
        await asyncio.gather(*(worker() for _ in range(workers)))

        failures = [r for r in results if r.state is ArtifactState.FAILED]
        if failures:
            skipped = [r.name for r in results if r.state is ArtifactState.IDLE]
            log.error(
                "orchestrator.run_failed",
                failed=[r.name for r in failures],
                not_started=skipped,
            )
            raise PackagingRunError(failures, results)
        log.info("orchestrator.run_complete", artifacts=len(results))
        return results

    async def resolve(self, artifacts: list[Artifact]) -> dict[str, ResolvedDependencySet]:
        """Resolve and validate every artifact without writing or installing anything."""
        project_manifest = self.load_project_manifest()
        graph = await self.load_dependency_graph()
        return {
            artifact.name: self._resolve(artifact, graph, project_manifest)
            for artifact in artifacts
        }

    # ── shared inputs ───────────────────────────────────────────────────

    def load_project_manifest(self) -> dict[str, Any]:
        path = self.package_json_path
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("orchestrator.manifest_unreadable", path=str(path), error=str(exc))
            return {}

    async def load_dependency_graph(self) -> DependencyGraph:
        package_dir = self.package_json_path.parent
        log.info("orchestrator.fetch_graph", packager=self.backend.name, root=str(package_dir))
        graph = await self.backend.get_prod_dependencies(package_dir, self.listing_depth)
        if graph.problems:
            log.info("orchestrator.ignoring_problems", count=len(graph.problems))
            for problem in graph.problems:
                log.info("packager.problem", problem=problem)
        return graph

    def service_name(self, project_manifest: Mapping[str, Any]) -> str:
        return self._service_name or project_manifest.get("name") or self.project_dir.name

    def staging_dir(self, artifact: Artifact) -> Path:
        """Where the manifest is installed; the artifact itself when no copy is needed."""
        if self.backend.must_copy_modules:
            return self.work_dir / "dependencies" / artifact.name
        return artifact.output_path

    # ── per artifact ────────────────────────────────────────────────────

    def _resolve(
        self,
        artifact: Artifact,
        graph: DependencyGraph,
        project_manifest: Mapping[str, Any],
        tracker: ProgressTracker | None = None,
    ) -> ResolvedDependencySet:
        includes = self.config.includes
        resolver = DependencyResolver(graph, project_manifest, includes, self.manifest_lookup)
        resolution = resolver.resolve(artifact.external_modules)
        if tracker is not None:
            tracker.advance(ArtifactState.VALIDATING)
        validator = DependencyValidator(project_manifest, includes.force_exclude)
        return validator.validate(resolution, artifact=artifact.name)

    async def _package_artifact(
        self,
        artifact: Artifact,
        result: ArtifactResult,
        graph: DependencyGraph,
        project_manifest: Mapping[str, Any],
        out_of_band: bool,
    ) -> None:
        tracker = ProgressTracker(artifact.name)
        tracker.callbacks.append(_log_transition)
        with structlog.contextvars.bound_contextvars(artifact=artifact.name):
            try:
                await self._pipeline(artifact, result, tracker, graph, project_manifest, out_of_band)
            except Exception as exc:
                log.debug("orchestrator.artifact_error", exc_info=True)
                tracker.fail(str(exc))
                result.error = str(exc)
                result.exception = exc
        result.state = tracker.state
        result.phases = tracker.get_summary()["phases"]

    async def _pipeline(
        self,
        artifact: Artifact,
        result: ArtifactResult,
        tracker: ProgressTracker,
        graph: DependencyGraph,
        project_manifest: Mapping[str, Any],
        out_of_band: bool,
    ) -> None:
        tracker.advance(ArtifactState.RESOLVING)
        dependencies = self._resolve(artifact, graph, project_manifest, tracker)
        result.dependencies = dependencies.to_dict()
        if not dependencies:
            log.info("orchestrator.no_external_modules")
            tracker.finish("no external modules")
            return

        log.info("orchestrator.packing", modules=list(dependencies))
        staging = self.staging_dir(artifact)
        assembler = ManifestAssembler(
            self.backend,
            project_manifest,
            self.package_json_path.parent,
            self.service_name(project_manifest),
            lockfile_name=self.config.packager_options.lock_file,
        )
        assembler.write(staging, dependencies)
        if staging != artifact.output_path:
            assembler.write(artifact.output_path, dependencies)
        tracker.advance(ArtifactState.MANIFEST_WRITTEN, str(staging))

        tracker.advance(ArtifactState.INSTALLING)
        await self.backend.install(staging)
        tracker.advance(ArtifactState.PRUNING)
        await self.backend.prune(staging)

        scripts = self.config.packager_options.scripts
        if scripts:
            tracker.advance(ArtifactState.RUNNING_SCRIPTS, ", ".join(scripts))
            await self.backend.run_scripts(staging, scripts)
        else:
            tracker.skip(ArtifactState.RUNNING_SCRIPTS, "no scripts configured")

        if not self.backend.must_copy_modules:
            tracker.skip(ArtifactState.COPYING, f"{self.backend.name} installs in place")
        elif out_of_band:
            tracker.skip(ArtifactState.COPYING, "dependencies managed by deploy target")
        else:
            tracker.advance(ArtifactState.COPYING)
            await asyncio.to_thread(copy_modules, staging, artifact.output_path)
        tracker.finish()

    @staticmethod
    def _check_unique_names(artifacts: list[Artifact]) -> None:
        seen: set[str] = set()
        for artifact in artifacts:
            if artifact.name in seen:
                raise ConfigurationError(f"Duplicate artifact name '{artifact.name}'")
            seen.add(artifact.name)


def copy_modules(staging: Path, output_path: Path) -> None:
    """Copy ``node_modules`` from the staging directory into the artifact."""
    source = staging / "node_modules"
    if not source.is_dir():
        log.info("orchestrator.nothing_to_copy", source=str(source))
        return
    target = output_path / "node_modules"
    if target.is_symlink():
        target.unlink()
    elif target.exists():
        # replaced, never merged
        shutil.rmtree(target)
    shutil.copytree(source, target, symlinks=True)


def _log_transition(artifact: str, phase: PhaseProgress) -> None:
    if phase.status == "failed":
        log.error("artifact.failed", artifact=artifact, error=phase.error, detail=phase.detail)
    elif phase.status == "skipped":
        log.debug("artifact.skipped", artifact=artifact, phase=phase.state.value, reason=phase.detail)
    else:
        log.debug("artifact.state", artifact=artifact, state=phase.state.value, detail=phase.detail)
