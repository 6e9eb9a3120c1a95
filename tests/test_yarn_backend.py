"""Tests for the yarn backend. Processes are mocked at spawn_process."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest

from nodepack.config import PackagerOptions
from nodepack.core.process import ProcessOutput
from nodepack.exceptions import DependencyListingError, SpawnError
from nodepack.packagers.yarn import (
    YarnBackend,
    convert_trees,
    find_workspace_root,
    is_berry_version,
    split_name_version,
)

SPAWN = "nodepack.packagers.base.spawn_process"

YARN_LIST_OUTPUT = "\n".join(
    [
        json.dumps({"type": "info", "data": "Visiting workspace"}),
        json.dumps({"type": "warning", "data": "package.json: No license field"}),
        json.dumps(
            {
                "type": "tree",
                "data": {
                    "type": "list",
                    "trees": [
                        {"name": "bluebird@3.7.2", "children": []},
                        {
                            "name": "request-promise@4.2.6",
                            "children": [{"name": "request@2.88.2", "children": []}],
                        },
                        {"name": "@scoped/vendor@1.0.0", "children": []},
                    ],
                },
            }
        ),
    ]
)


def fake_yarn(version: str):
    """spawn_process side effect answering ``-v`` with *version*."""

    async def _spawn(command, args, cwd):
        if args == ["-v"]:
            return ProcessOutput(f"{version}\n", "")
        return ProcessOutput("", "")

    return _spawn


class TestHelpers:
    def test_split_name_version(self):
        assert split_name_version("bluebird@3.7.2") == ("bluebird", "3.7.2")
        assert split_name_version("@scope/pkg@1.2.0") == ("@scope/pkg", "1.2.0")
        assert split_name_version("@scope/pkg") == ("@scope/pkg", "")

    def test_convert_trees(self):
        trees = json.loads(YARN_LIST_OUTPUT.splitlines()[-1])["data"]["trees"]
        converted = convert_trees(trees)
        assert converted["request-promise"]["dependencies"]["request"]["version"] == "2.88.2"
        assert converted["@scoped/vendor"]["version"] == "1.0.0"

    def test_is_berry_version(self):
        assert not is_berry_version("1.22.19")
        assert is_berry_version("3.6.0")
        assert not is_berry_version("")


class TestWorkspaceRoot:
    def _make_workspace(self, root, workspaces):
        app = root / "packages" / "app"
        app.mkdir(parents=True)
        (root / "package.json").write_text(json.dumps({"private": True, "workspaces": workspaces}))
        (app / "package.json").write_text(json.dumps({"name": "app"}))
        return app

    def test_list_form(self, tmp_path):
        app = self._make_workspace(tmp_path, ["packages/*"])
        assert find_workspace_root(app) == tmp_path.resolve()

    def test_object_form(self, tmp_path):
        app = self._make_workspace(tmp_path, {"packages": ["packages/*"]})
        assert find_workspace_root(app) == tmp_path.resolve()

    def test_not_a_member(self, tmp_path):
        app = self._make_workspace(tmp_path, ["libs/*"])
        assert find_workspace_root(app) is None

    def test_star_stays_within_one_segment(self, tmp_path):
        nested = tmp_path / "packages" / "group" / "app"
        nested.mkdir(parents=True)
        (tmp_path / "package.json").write_text(json.dumps({"workspaces": ["packages/*"]}))
        assert find_workspace_root(nested) is None

    def test_globstar_spans_segments(self, tmp_path):
        nested = tmp_path / "packages" / "group" / "app"
        nested.mkdir(parents=True)
        (tmp_path / "package.json").write_text(json.dumps({"workspaces": ["./packages/**"]}))
        assert find_workspace_root(nested) == tmp_path.resolve()


class TestListDependencies:
    @pytest.mark.asyncio
    async def test_parses_first_tree(self, tmp_path):
        with patch(SPAWN, new_callable=AsyncMock, return_value=ProcessOutput(YARN_LIST_OUTPUT, "")) as spawn:
            graph = await YarnBackend().get_prod_dependencies(tmp_path, depth=2)
        assert spawn.call_args.args[1] == ["list", "--depth=2", "--json", "--production"]
        assert graph.find("request").version == "2.88.2"
        assert graph.problems == ["package.json: No license field"]

    @pytest.mark.asyncio
    async def test_runs_in_workspace_root(self, tmp_path):
        app = tmp_path / "packages" / "app"
        app.mkdir(parents=True)
        (tmp_path / "package.json").write_text(json.dumps({"workspaces": ["packages/*"]}))
        with patch(SPAWN, new_callable=AsyncMock, return_value=ProcessOutput(YARN_LIST_OUTPUT, "")) as spawn:
            await YarnBackend().get_prod_dependencies(app)
        assert spawn.call_args.args[2] == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_warning_on_stderr_is_tolerated(self, tmp_path):
        error = SpawnError("yarn list failed", stdout=YARN_LIST_OUTPUT, stderr="warning Resolution field\n", returncode=1)
        with patch(SPAWN, new_callable=AsyncMock, side_effect=error):
            graph = await YarnBackend().get_prod_dependencies(tmp_path)
        assert "warning Resolution field" in graph.problems

    @pytest.mark.asyncio
    async def test_error_on_stderr_is_fatal(self, tmp_path):
        error = SpawnError("yarn list failed", stdout=YARN_LIST_OUTPUT, stderr="error Something broke\n", returncode=1)
        with patch(SPAWN, new_callable=AsyncMock, side_effect=error):
            with pytest.raises(DependencyListingError):
                await YarnBackend().get_prod_dependencies(tmp_path)


class TestLockfile:
    def test_rebase_file_versions(self):
        lockfile = (
            '"mymodule@file:../mymodule":\n'
            '  version "1.0.0"\n'
            "\n"
            "bluebird@^3.4.0:\n"
            '  version "3.7.2"\n'
        )
        rebased = YarnBackend().rebase_lockfile("../..", lockfile)
        assert '"mymodule@file:../../../mymodule":' in rebased
        assert "bluebird@^3.4.0:" in rebased

    def test_lockfile_is_text(self):
        backend = YarnBackend()
        assert backend.parse_lockfile("a\n") == "a\n"
        assert backend.serialize_lockfile("a\n") == "a\n"
        assert backend.lockfile_name == "yarn.lock"
        assert backend.must_copy_modules is False


class TestCapabilities:
    def test_default_copy_sections(self):
        assert YarnBackend().copy_package_section_names == ("resolutions",)

    def test_copy_sections_from_options(self):
        backend = YarnBackend(PackagerOptions(copy_package_section_names=["resolutions", "overrides"]))
        assert backend.copy_package_section_names == ("resolutions", "overrides")


class TestInstall:
    @pytest.mark.asyncio
    async def test_classic_flags(self, tmp_path):
        with patch(SPAWN, new_callable=AsyncMock, side_effect=fake_yarn("1.22.19")) as spawn:
            await YarnBackend().install(tmp_path)
        assert spawn.call_args.args[1] == ["install", "--non-interactive", "--frozen-lockfile"]

    @pytest.mark.asyncio
    async def test_berry_flags(self, tmp_path):
        with patch(SPAWN, new_callable=AsyncMock, side_effect=fake_yarn("3.6.0")) as spawn:
            await YarnBackend().install(tmp_path)
        assert spawn.call_args.args[1] == ["install", "--immutable"]

    @pytest.mark.asyncio
    async def test_option_flags(self, tmp_path):
        options = PackagerOptions(
            no_frozen_lockfile=True,
            no_non_interactive=True,
            ignore_scripts=True,
            network_concurrency=8,
        )
        with patch(SPAWN, new_callable=AsyncMock, side_effect=fake_yarn("1.22.19")) as spawn:
            await YarnBackend(options).install(tmp_path)
        assert spawn.call_args.args[1] == ["install", "--ignore-scripts", "--network-concurrency", "8"]

    @pytest.mark.asyncio
    async def test_version_is_cached(self, tmp_path):
        with patch(SPAWN, new_callable=AsyncMock, side_effect=fake_yarn("1.22.19")) as spawn:
            backend = YarnBackend()
            await backend.install(tmp_path)
            await backend.prune(tmp_path)
        args = [c.args[1] for c in spawn.call_args_list]
        assert args.count(["-v"]) == 1
        assert args.count(["install", "--non-interactive", "--frozen-lockfile"]) == 2

    @pytest.mark.asyncio
    async def test_version_from_failed_command(self, tmp_path):
        error = SpawnError("yarn -v failed", stdout="3.2.1\n", returncode=1)
        with patch(SPAWN, new_callable=AsyncMock, side_effect=error):
            assert await YarnBackend().get_version(tmp_path) == "3.2.1"

    @pytest.mark.asyncio
    async def test_no_install(self, tmp_path):
        with patch(SPAWN, new_callable=AsyncMock) as spawn:
            backend = YarnBackend(PackagerOptions(no_install=True))
            await backend.install(tmp_path)
            await backend.prune(tmp_path)
        spawn.assert_not_called()
