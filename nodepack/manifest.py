"""Composite manifest and lockfile assembly for a staging directory."""

from __future__ import annotations

import copy
import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from nodepack.models.graph import ResolvedDependencySet
from nodepack.packagers.base import PackagerBackend, rebase_file_reference

log = structlog.get_logger(__name__)

MANIFEST_NAME = "package.json"


@dataclass
class ManifestFiles:
    manifest_path: Path
    lockfile_path: Path | None = None


def path_to_root(target_dir: str | Path, root_dir: str | Path) -> str:
    """Relative POSIX path leading from *target_dir* back to *root_dir*."""
    rel = os.path.relpath(Path(root_dir).resolve(), Path(target_dir).resolve())
    return Path(rel).as_posix()


class ManifestAssembler:
    """
    Builds the ``package.json`` installed in a staging directory and the
    lockfile copy that goes next to it.

    The project manifest passed in is never modified; copied sections are
    deep copies.
    """

    def __init__(
        self,
        backend: PackagerBackend,
        project_manifest: Mapping[str, Any],
        package_dir: str | Path,
        service_name: str,
        lockfile_name: str | None = None,
    ) -> None:
        self.backend = backend
        self.project_manifest = project_manifest
        self.package_dir = Path(package_dir)
        self.service_name = service_name
        self.lockfile_name = lockfile_name or backend.lockfile_name

    def build_manifest(self, dependencies: ResolvedDependencySet, rel_root: str) -> dict[str, Any]:
        composite: dict[str, Any] = {
            "name": self.service_name,
            "version": self.project_manifest.get("version") or "1.0.0",
            "description": f"Packaged externals for {self.service_name}",
            "private": True,
            "scripts": {},
            "dependencies": {
                name: rebase_file_reference(rel_root, spec) for name, spec in dependencies.items()
            },
        }
        for section in self.backend.copy_package_section_names:
            if section in self.project_manifest:
                composite[section] = copy.deepcopy(self.project_manifest[section])
        return composite

    def build_lockfile(self, rel_root: str) -> str | None:
        """Rebased lockfile text, or None if there is no readable lockfile."""
        source = self.package_dir / self.lockfile_name
        if not source.is_file():
            return None
        try:
            contents = self.backend.parse_lockfile(source.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("manifest.lockfile_unreadable", path=str(source), error=str(exc))
            return None
        return self.backend.serialize_lockfile(self.backend.rebase_lockfile(rel_root, contents))

    def write(self, target_dir: str | Path, dependencies: ResolvedDependencySet) -> ManifestFiles:
        """Write manifest and (if available) lockfile into *target_dir*.

        Unchanged inputs produce byte-identical files. A lockfile left over
        from an earlier run is removed when the project has none.
        """
        target = Path(target_dir)
        target.mkdir(parents=True, exist_ok=True)
        rel_root = path_to_root(target, self.package_dir)

        manifest_path = target / MANIFEST_NAME
        manifest_text = json.dumps(self.build_manifest(dependencies, rel_root), indent=2)
        manifest_path.write_text(manifest_text, encoding="utf-8")

        files = ManifestFiles(manifest_path=manifest_path)
        lockfile_path = target / self.backend.lockfile_name
        lockfile_text = self.build_lockfile(rel_root)
        if lockfile_text is not None:
            lockfile_path.write_text(lockfile_text, encoding="utf-8")
            files.lockfile_path = lockfile_path
            log.debug("manifest.lockfile_copied", target=str(lockfile_path), rel_root=rel_root)
        elif lockfile_path.exists():
            lockfile_path.unlink()
        return files
