"""YAML defaults for settings.

`config.yaml` holds nested sections; settings fields read them as flattened
env-style keys, so `checkin.default_times` becomes `CHECKIN_DEFAULT_TIMES`.
Environment variables still override whatever the file says.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "TEMPORAL_CHECKIN_CONFIG"

# src/temporal_checkin/config/loader.py -> project root
PROJECT_ROOT = Path(__file__).resolve().parents[3]


def default_config_path() -> Path:
    """`$TEMPORAL_CHECKIN_CONFIG` if set, else config.yaml at the project root."""
    override = os.environ.get(CONFIG_PATH_ENV)
    return Path(override) if override else PROJECT_ROOT / "config.yaml"


def read_config_file(path: Path | str) -> dict[str, Any]:
    """Parse a YAML file into a dict. Missing or unreadable files give {}."""
    path = Path(path)
    if not path.is_file():
        logger.debug(f"No config file at {path}, using built-in defaults")
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.error(f"Ignoring {path}: top level must be a mapping")
        return {}
    return data


def flatten_sections(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """
    {"storage": {"tasks_db_path": "x.db"}} -> {"STORAGE_TASKS_DB_PATH": "x.db"}

    Lists are leaf values and stay lists.
    """
    flat: dict[str, Any] = {}
    for key, value in data.items():
        name = f"{prefix}_{key}".upper() if prefix else str(key).upper()
        if isinstance(value, dict):
            flat.update(flatten_sections(value, name))
        else:
            flat[name] = value
    return flat


class ConfigLoader:
    """Reads one YAML file and exposes its flattened values (cached)."""

    def __init__(self, config_path: Path | str | None = None):
        self.config_path = Path(config_path) if config_path else default_config_path()
        self._values: dict[str, Any] | None = None

    def load_yaml_defaults(self) -> dict[str, Any]:
        if self._values is None:
            self._values = flatten_sections(read_config_file(self.config_path))
            logger.debug(f"Loaded {len(self._values)} config keys from {self.config_path}")
        return self._values


_loader: ConfigLoader | None = None


def get_config_loader(config_path: Path | str | None = None) -> ConfigLoader:
    """Shared loader; passing a path replaces it."""
    global _loader
    if _loader is None or config_path is not None:
        _loader = ConfigLoader(config_path)
    return _loader


def get_yaml_defaults() -> dict[str, Any]:
    return get_config_loader().load_yaml_defaults()
