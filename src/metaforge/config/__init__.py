"""Configuration — TOML discovery, settings, and logging setup."""

from metaforge.config.discovery import find_config, load_config
from metaforge.config.logging import configure_logging
from metaforge.config.models import (
    DatabaseConfig,
    MetaforgeConfig,
    RegistryConfig,
    RepositoryConfig,
)
from metaforge.config.settings import MetaforgeSettings

__all__ = [
    "DatabaseConfig",
    "MetaforgeConfig",
    "MetaforgeSettings",
    "RegistryConfig",
    "RepositoryConfig",
    "configure_logging",
    "find_config",
    "load_config",
]
