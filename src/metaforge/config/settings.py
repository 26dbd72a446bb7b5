"""Unified settings — keyword overrides, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — overrides passed by the caller or CLI
  2. Env vars     — ``METAFORGE_*`` prefix, ``__`` between nested keys
  3. TOML file    — ``metaforge.toml`` discovered via walk-up
  4. Code defaults — baked into the section models
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from metaforge.config.discovery import find_config
from metaforge.config.models import DatabaseConfig, RegistryConfig, RepositoryConfig
from metaforge.errors import ConfigurationError

DEFAULT_DATABASE_NAME = "metaforge.db"


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Read settings from a ``metaforge.toml`` file."""

    def __init__(self, settings_cls: type[BaseSettings], toml_path: Path | None) -> None:
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        if toml_path and toml_path.is_file():
            try:
                self._data = tomllib.loads(toml_path.read_text(encoding="utf-8"))
            except tomllib.TOMLDecodeError as exc:
                msg = f"Invalid TOML in {toml_path}: {exc}"
                raise ConfigurationError(msg) from exc

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# TOML path for the settings instance under construction.
_tls = threading.local()


class MetaforgeSettings(BaseSettings):
    """Resolved configuration for one DataStore.

    Attributes:
        project_root: Directory holding ``metaforge.toml`` (or CWD); the
            default SQLite file lives here.
        config_path: The TOML file that was read, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "METAFORGE_",
        "env_nested_delimiter": "__",
    }

    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    verbose: bool = False
    log_json: bool = False

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        return (
            init_settings,
            env_settings,
            TomlSettingsSource(settings_cls, getattr(_tls, "toml_path", None)),
        )

    @property
    def database_url(self) -> str:
        if self.database.url:
            return self.database.url
        return f"sqlite+aiosqlite:///{self.project_root / DEFAULT_DATABASE_NAME}"

    @classmethod
    def load(
        cls,
        *,
        config_path: Path | str | None = None,
        project_root: Path | None = None,
        **overrides: Any,
    ) -> MetaforgeSettings:
        """Discover ``metaforge.toml`` and build settings.

        An explicit *config_path* wins over walk-up discovery from
        *project_root* (default: cwd). *overrides* take priority over
        everything else.
        """
        toml_path: Path | None = None
        if config_path is not None:
            p = Path(config_path)
            if not p.is_file():
                msg = f"Config file not found: {p}"
                raise ConfigurationError(msg)
            toml_path = p
        else:
            toml_path = find_config(project_root)

        root = project_root
        if root is None:
            root = toml_path.parent if toml_path else Path.cwd()

        _tls.toml_path = toml_path
        try:
            return cls(project_root=root, config_path=toml_path, **overrides)
        finally:
            _tls.toml_path = None
