"""
Configuration loader — reads compcache.yml into a CacheConfig.

The file is optional: without one every setting keeps its default and
the project root is the current directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from compcache.core.errors import CompCacheError
from compcache.core.models.config import CacheConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "compcache.yml"

# The YAML may wrap everything under this key or be flat
_WRAPPER_KEY = "compcache"


class ConfigError(CompCacheError):
    """Raised when the cache configuration is invalid or missing."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for compcache.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to compcache.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None, *, required: bool = False) -> CacheConfig:
    """Load and validate the cache configuration.

    Args:
        path: Explicit path to compcache.yml. If None, searches upward.
        required: Raise instead of falling back to defaults when no
            file is found.

    Returns:
        Validated CacheConfig whose ``project_root`` is the file's directory.

    Raises:
        ConfigError: If the file is invalid, or missing while required
            (an explicit *path* is always required).
    """
    if path is None:
        path = find_config_file()
        if path is None:
            if required:
                raise ConfigError(f"No {CONFIG_FILE} found. Create one or specify --config.")
            logger.debug("No %s found, using defaults", CONFIG_FILE)
            return CacheConfig()

    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading cache config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    if _WRAPPER_KEY in data:
        data = data[_WRAPPER_KEY] or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Expected a mapping under '{_WRAPPER_KEY}' in {path}")

    data = dict(data)
    root = project_root(path)
    if data.get("project_root"):
        # Relative roots are relative to the config file, not the cwd
        data["project_root"] = root / Path(str(data["project_root"])).expanduser()
    else:
        data["project_root"] = root

    try:
        config = CacheConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid cache configuration: {e}") from e

    logger.info(
        "Loaded cache config for %s (backend=%s, archive=%s)",
        config.project_root, config.backend.kind, config.archive.format,
    )
    return config


def project_root(config_path: Path) -> Path:
    """Get the project root directory from a config file path."""
    return config_path.parent.resolve()
