"""
Config check use case — validate compcache.yml and report issues.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from compcache.core.config.loader import CONFIG_FILE, ConfigError, find_config_file, load_config
from compcache.core.models.config import PROFILE_TOKEN, CacheConfig


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: CacheConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "project_root": str(self.config.project_root) if self.config else None,
            "backend": self.config.backend.kind if self.config else None,
            "archive_format": self.config.archive.format if self.config else None,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate cache configuration and report issues.

    Args:
        config_path: Optional explicit path to compcache.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.errors.append(f"No {CONFIG_FILE} found.")
        return result
    result.config_path = config_path

    try:
        config = load_config(config_path)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    # Semantic checks
    if not config.build_root_path.is_dir():
        result.warnings.append(
            f"Build root does not exist yet: {config.build_root} (nothing compiled?)"
        )

    if config.archive.password() is None:
        result.warnings.append(
            f"${config.archive.password_env} is not set; artifacts will not be password protected."
        )

    if config.backend.kind == "local" and not config.backend_path().is_dir():
        result.warnings.append(
            f"Backend directory does not exist: {config.backend_path()} (created on first upload)"
        )

    if config.backend.kind == "memory":
        result.warnings.append("Backend 'memory' keeps nothing between runs.")

    if config.archive.format == "zip" and shutil.which("zip") is None:
        result.warnings.append("archive.format is 'zip' but the zip tool is not installed.")

    if PROFILE_TOKEN not in config.build.command:
        result.warnings.append(
            "build.command has no {profile} placeholder; every profile runs the same command."
        )

    # Result
    result.valid = len(result.errors) == 0
    return result
