"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, ``metaforge.toml`` only holds
overrides. An empty file (or none at all) yields a working SQLite store
next to the config.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

# --- metaforge.toml sections ---


class DatabaseConfig(BaseModel):
    """[database] section.

    ``url`` is any SQLAlchemy async URL; None means
    ``sqlite+aiosqlite:///<project root>/metaforge.db``.
    """

    model_config = {"frozen": True}

    url: str | None = None
    echo: bool = False
    wal: bool = True
    foreign_keys: bool = True


class RegistryConfig(BaseModel):
    """[registry] section."""

    model_config = {"frozen": True}

    derive_relations: bool = True
    dump_path: Path | None = None


class RepositoryConfig(BaseModel):
    """[repository] section."""

    model_config = {"frozen": True}

    default_page_size: int = Field(default=20, ge=1)


# --- Top-level config ---


class MetaforgeConfig(BaseModel):
    """Root model for a parsed ``metaforge.toml``."""

    model_config = {"frozen": True}

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    repository: RepositoryConfig = Field(default_factory=RepositoryConfig)
