"""Tests for BackendRegistry."""

from __future__ import annotations

import pytest

from nodepack.config import PackagerOptions
from nodepack.exceptions import ConfigurationError, PackagerNotFoundError
from nodepack.packagers.npm import NpmBackend
from nodepack.packagers.registry import BackendDescriptor, BackendRegistry, create_default_registry
from nodepack.packagers.yarn import YarnBackend
from nodepack.testing import FakeBackend


class TestBackendRegistry:
    def test_default_registry(self):
        registry = create_default_registry()
        assert sorted(d.name for d in registry.list_all()) == ["npm", "yarn"]
        assert isinstance(registry.create("npm"), NpmBackend)
        assert isinstance(registry.create("yarn"), YarnBackend)

    def test_options_are_passed(self):
        backend = create_default_registry().create("npm", PackagerOptions(no_install=True))
        assert backend.options.no_install is True

    def test_unknown_packager(self):
        registry = create_default_registry()
        with pytest.raises(PackagerNotFoundError) as exc_info:
            registry.create("pnpm")
        assert exc_info.value.packager_id == "pnpm"
        assert exc_info.value.known == ["npm", "yarn"]
        assert isinstance(exc_info.value, ConfigurationError)

    def test_register_custom(self):
        registry = BackendRegistry()
        registry.register(BackendDescriptor(name="fake", description="test", factory=lambda _: FakeBackend()))
        assert registry.get("fake").description == "test"
        assert isinstance(registry.create("fake"), FakeBackend)
        assert registry.get("npm") is None
