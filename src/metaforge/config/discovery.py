"""Config file discovery and loading.

Walk-up finder locates metaforge.toml the way git finds .git/.
The METAFORGE_CONFIG env var overrides discovery.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from metaforge.config.models import MetaforgeConfig

CONFIG_FILENAME = "metaforge.toml"
CONFIG_ENV_VAR = "METAFORGE_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for metaforge.toml.

    Returns the path to the config file, or None if not found.
    Checks METAFORGE_CONFIG env var first.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path)
        return p if p.is_file() else None

    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current.parent == current:
            return None
        current = current.parent


def load_config(path: Path | None = None, cwd: Path | None = None) -> MetaforgeConfig:
    """Load and validate config from a TOML file.

    If *path* is None, uses find_config(*cwd*) to discover the file.
    Returns the default MetaforgeConfig if no file is found.
    """
    if path is None:
        path = find_config(cwd)
    if path is None:
        return MetaforgeConfig()

    data: dict[str, Any] = tomllib.loads(path.read_text(encoding="utf-8"))
    return MetaforgeConfig.model_validate(data)
