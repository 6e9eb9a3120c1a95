"""Tests for ManifestAssembler."""

from __future__ import annotations

import json

from nodepack.manifest import ManifestAssembler, path_to_root
from nodepack.models.graph import ResolvedDependencySet
from nodepack.packagers.yarn import YarnBackend
from nodepack.testing import FakeBackend

DEPS = ResolvedDependencySet({"bluebird": "^3.4.0", "mymodule": "file:../mymodule", "uuid": "^5.4.1"})


class TestPathToRoot:
    def test_nested(self, tmp_path):
        assert path_to_root(tmp_path / "a" / "b", tmp_path) == "../.."

    def test_same_dir(self, tmp_path):
        assert path_to_root(tmp_path, tmp_path) == "."


class TestBuildManifest:
    def test_composite_contents(self, project_dir, project_manifest):
        assembler = ManifestAssembler(FakeBackend(), project_manifest, project_dir, "test-service")
        manifest = assembler.build_manifest(DEPS, "../..")
        assert manifest == {
            "name": "test-service",
            "version": "1.0.0",
            "description": "Packaged externals for test-service",
            "private": True,
            "scripts": {},
            "dependencies": {
                "bluebird": "^3.4.0",
                "mymodule": "file:../../../mymodule",
                "uuid": "^5.4.1",
            },
        }

    def test_copies_sections_without_mutation(self, project_dir, project_manifest):
        assembler = ManifestAssembler(YarnBackend(), project_manifest, project_dir, "svc")
        manifest = assembler.build_manifest(DEPS, "..")
        assert manifest["resolutions"] == {"minimist": "1.2.8"}
        manifest["resolutions"]["minimist"] = "0.0.1"
        assert project_manifest["resolutions"] == {"minimist": "1.2.8"}
        assert "devDependencies" not in manifest

    def test_default_version(self, project_dir):
        manifest = ManifestAssembler(FakeBackend(), {}, project_dir, "svc").build_manifest(DEPS, "..")
        assert manifest["version"] == "1.0.0"


class TestWrite:
    def test_writes_manifest(self, project_dir, project_manifest):
        target = project_dir / ".nodepack" / "dependencies" / "handler"
        files = ManifestAssembler(FakeBackend(), project_manifest, project_dir, "svc").write(target, DEPS)
        data = json.loads(files.manifest_path.read_text())
        assert data["dependencies"]["mymodule"] == "file:../../../../mymodule"
        assert files.lockfile_path is None

    def test_rewrite_is_byte_identical(self, project_dir, project_manifest):
        target = project_dir / "out"
        assembler = ManifestAssembler(FakeBackend(), project_manifest, project_dir, "svc")
        first = assembler.write(target, DEPS).manifest_path.read_bytes()
        second = assembler.write(target, DEPS).manifest_path.read_bytes()
        assert first == second

    def test_lockfile_is_rebased(self, project_dir, project_manifest):
        lockfile = {"lockfileVersion": 1, "dependencies": {"mymodule": {"version": "file:../mymodule"}}}
        (project_dir / "fake-lock.json").write_text(json.dumps(lockfile))
        files = ManifestAssembler(FakeBackend(), project_manifest, project_dir, "svc").write(
            project_dir / "out", DEPS
        )
        copied = json.loads(files.lockfile_path.read_text())
        assert copied["dependencies"]["mymodule"]["version"] == "file:../../mymodule"
        assert json.loads((project_dir / "fake-lock.json").read_text()) == lockfile

    def test_unreadable_lockfile_is_skipped(self, project_dir, project_manifest):
        (project_dir / "fake-lock.json").write_text("{broken")
        target = project_dir / "out"
        target.mkdir()
        (target / "fake-lock.json").write_text("{}")
        files = ManifestAssembler(FakeBackend(), project_manifest, project_dir, "svc").write(target, DEPS)
        assert files.lockfile_path is None
        assert not (target / "fake-lock.json").exists()
        assert files.manifest_path.exists()

    def test_yarn_lockfile_text(self, project_dir, project_manifest):
        (project_dir / "yarn.lock").write_text('"mymodule@file:../mymodule":\n  version "1.0.0"\n')
        files = ManifestAssembler(YarnBackend(), project_manifest, project_dir, "svc").write(
            project_dir / "out", DEPS
        )
        assert '"mymodule@file:../../mymodule":' in files.lockfile_path.read_text()
