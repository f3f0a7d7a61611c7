"""
Cache configuration — loaded from compcache.yml.

Passed explicitly down the orchestrator's call chain; nothing in the
core reads process-wide settings on its own.
"""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from compcache.core.models.descriptor import BuildProfile

PROFILE_TOKEN = "{profile}"


class ArchiveSettings(BaseModel):
    """How build directories are packed for upload."""

    format: Literal["zip", "tar"] = "zip"
    password_env: str = "COMPCACHE_ARCHIVE_PASSWORD"

    def password(self) -> str | None:
        """The archive password from the environment, or None when unset."""
        return os.environ.get(self.password_env) or None


class BackendSettings(BaseModel):
    """Which remote store holds the artifacts and how hard to try reaching it."""

    kind: Literal["local", "memory"] = "local"
    path: str = ".compcache/remote"
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.5, ge=0)
    failure_threshold: int = Field(default=5, ge=1)


class BuildSettings(BaseModel):
    """The external compile action."""

    command: str = "make compile PROFILE={profile}"
    noop_exit_code: int | None = None
    timeout: int | None = None

    def argv(self, profile: BuildProfile | str) -> list[str]:
        """The compile command for *profile*, split into arguments.

        Only the literal ``{profile}`` token is substituted; other braces
        (shell expansions like ``${HOME}``) pass through untouched.
        """
        return shlex.split(self.command.replace(PROFILE_TOKEN, BuildProfile(profile).value))


class CacheConfig(BaseModel):
    """Root configuration for one repository."""

    project_root: Path = Field(default_factory=Path.cwd)
    remote_branch: str = "origin/main"
    default_profile: BuildProfile = BuildProfile.DEV
    build_root: str = "_build"
    lineage_depth: int = Field(default=100, ge=1)
    upstream_depth: int = Field(default=200, ge=1)
    git_timeout: int = Field(default=30, ge=1)

    archive: ArchiveSettings = Field(default_factory=ArchiveSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    build: BuildSettings = Field(default_factory=BuildSettings)

    @property
    def build_root_path(self) -> Path:
        """Absolute build output root (e.g. ``<project>/_build``)."""
        return self.project_root / self.build_root

    def build_dir(self, profile: BuildProfile | str) -> Path:
        """Build output directory of *profile* (e.g. ``<project>/_build/dev``)."""
        return self.build_root_path / BuildProfile(profile).value

    def backend_path(self) -> Path:
        """Backend storage path, resolved against the project root."""
        path = Path(self.backend.path).expanduser()
        return path if path.is_absolute() else self.project_root / path
