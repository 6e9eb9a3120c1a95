"""Packaging configuration.

Mirrors the keys the host plugin accepts under its ``webpack`` section::

    includeModules:
      forceInclude: [pg]
      forceExclude: [aws-sdk]
      packagePath: ./package.json
      nodeModulesRelativeDir: ../../
    packager: yarn
    packagerOptions:
      scripts: [rebuild]
      noFrozenLockfile: true
    concurrency: 4
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from nodepack.exceptions import ConfigurationError

DEFAULT_PACKAGE_PATH = "./package.json"


def _default_concurrency() -> int:
    env = os.environ.get("NODEPACK_CONCURRENCY")
    if env:
        try:
            return int(env)
        except ValueError as exc:
            raise ConfigurationError(f"NODEPACK_CONCURRENCY must be an integer, got {env!r}") from exc
    return os.cpu_count() or 1


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class IncludeModules(_CamelModel):
    force_include: list[str] = Field(default_factory=list, alias="forceInclude")
    force_exclude: list[str] = Field(default_factory=list, alias="forceExclude")
    package_path: str = Field(default=DEFAULT_PACKAGE_PATH, alias="packagePath")
    node_modules_relative_dir: str | None = Field(default=None, alias="nodeModulesRelativeDir")


class PackagerOptions(_CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    scripts: list[str] = Field(default_factory=list)
    no_install: bool = Field(default=False, alias="noInstall")
    ignore_scripts: bool = Field(default=False, alias="ignoreScripts")
    no_frozen_lockfile: bool = Field(default=False, alias="noFrozenLockfile")
    no_non_interactive: bool = Field(default=False, alias="noNonInteractive")
    network_concurrency: int | None = Field(default=None, alias="networkConcurrency")
    copy_package_section_names: list[str] | None = Field(
        default=None, alias="copyPackageSectionNames"
    )
    # Lockfile to copy instead of the packager default, relative to the package.json dir.
    lock_file: str | None = Field(default=None, alias="lockFile")


class Configuration(_CamelModel):
    include_modules: bool | IncludeModules = Field(default=False, alias="includeModules")
    packager: str = "npm"
    packager_options: PackagerOptions = Field(
        default_factory=PackagerOptions, alias="packagerOptions"
    )
    concurrency: int = Field(default_factory=_default_concurrency)

    @field_validator("include_modules", mode="before")
    @classmethod
    def _none_disables(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("include_modules")
    @classmethod
    def _normalize_include(cls, value: bool | IncludeModules) -> bool | IncludeModules:
        # runs after coercion, so "true" and 1 arrive here as True
        if value is True:
            return IncludeModules()
        return value

    @field_validator("concurrency")
    @classmethod
    def _positive_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("concurrency must be at least 1")
        return value

    @classmethod
    def from_mapping(cls, data: dict[str, Any] | None) -> Configuration:
        try:
            return cls.model_validate(data or {})
        except ValidationError as exc:
            messages = []
            for err in exc.errors():
                loc = ".".join(str(part) for part in err["loc"])
                messages.append(f"{loc}: {err['msg']}")
            raise ConfigurationError("Invalid configuration: " + "; ".join(messages)) from exc

    @property
    def enabled(self) -> bool:
        return isinstance(self.include_modules, IncludeModules)

    @property
    def includes(self) -> IncludeModules:
        """The include/exclude settings, empty when packaging is disabled."""
        if isinstance(self.include_modules, IncludeModules):
            return self.include_modules
        return IncludeModules()

    def package_json_path(self, project_dir: str | Path) -> Path:
        return (Path(project_dir) / self.includes.package_path).resolve()

    def node_modules_dir(self, project_dir: str | Path) -> Path:
        """Directory holding ``node_modules`` for installed package manifests."""
        base = self.package_json_path(project_dir).parent
        if self.includes.node_modules_relative_dir:
            base = (base / self.includes.node_modules_relative_dir).resolve()
        return base / "node_modules"
