"""
Cache descriptor — the structured key of one cached build artifact.

A descriptor is either created fresh when packaging a new artifact
(timestamp = creation time) or reconstructed by decoding the name of an
artifact that already lives in the remote store (timestamp = the encoded
one, not the commit's own time).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

# Characters that delimit fields in the artifact name and remote path.
RESERVED_CHARS = ("_", ".", "/")

# Only Linux exposes this file; on macOS the CPU is described by sysctl.
PLATFORM_MARKER = "/proc/cpuinfo"


class Architecture(StrEnum):
    """CPU architectures artifacts are cached for."""

    X86_64 = "x86_64"
    AARCH64 = "aarch64"


class OperatingSystem(StrEnum):
    """Operating systems artifacts are cached for."""

    LINUX = "linux"
    MACOS = "macos"


class BuildProfile(StrEnum):
    """Named compilation configurations that partition the cache."""

    DEV = "dev"
    TEST = "test"


# One architecture per OS: Linux machines are x86_64, Macs are Apple silicon.
PLATFORM_PAIRS: dict[OperatingSystem, Architecture] = {
    OperatingSystem.LINUX: Architecture.X86_64,
    OperatingSystem.MACOS: Architecture.AARCH64,
}


def detect_platform(marker: str | Path = PLATFORM_MARKER) -> tuple[Architecture, OperatingSystem]:
    """Guess the (architecture, OS) pair of the current machine.

    This is deliberately not CPU detection: the OS is inferred from the
    existence of a Linux-only file and the architecture follows from the
    fixed pairing in ``PLATFORM_PAIRS``. An ARM Linux box is reported as
    x86_64.
    """
    operating_system = (
        OperatingSystem.LINUX if Path(marker).exists() else OperatingSystem.MACOS
    )
    return PLATFORM_PAIRS[operating_system], operating_system


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(UTC).replace(microsecond=0)


class CacheDescriptor(BaseModel):
    """Identity of one cached build artifact.

    Fields map one-to-one onto the artifact name
    ``<architecture>_<os>_<profile>_<commit>_<YYYYMMDDHHMMSS>``.
    """

    model_config = ConfigDict(frozen=True)

    architecture: Architecture
    operating_system: OperatingSystem
    profile: BuildProfile
    commit_hash: str
    timestamp: datetime

    @field_validator("commit_hash")
    @classmethod
    def _check_commit_hash(cls, value: str) -> str:
        if not value:
            raise ValueError("commit_hash must not be empty")
        for char in RESERVED_CHARS:
            if char in value:
                raise ValueError(f"commit_hash must not contain {char!r}: {value}")
        return value

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        """UTC, truncated to whole seconds (the key's resolution)."""
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).replace(microsecond=0)

    @classmethod
    def create(
        cls,
        profile: BuildProfile | str,
        commit_hash: str,
        *,
        architecture: Architecture | str | None = None,
        operating_system: OperatingSystem | str | None = None,
        timestamp: datetime | None = None,
    ) -> CacheDescriptor:
        """Build a descriptor for *commit_hash*, detecting the platform if not given.

        When only one of architecture / OS is given, the other is taken
        from the detected platform.
        """
        if architecture is None or operating_system is None:
            detected_arch, detected_os = detect_platform()
            architecture = architecture or detected_arch
            operating_system = operating_system or detected_os

        return cls(
            architecture=Architecture(architecture),
            operating_system=OperatingSystem(operating_system),
            profile=BuildProfile(profile),
            commit_hash=commit_hash,
            timestamp=timestamp if timestamp is not None else utc_now(),
        )

    def __str__(self) -> str:
        return (
            f"{self.architecture}/{self.operating_system}/{self.profile}"
            f"@{self.commit_hash} ({self.timestamp:%Y-%m-%d %H:%M:%S} UTC)"
        )
