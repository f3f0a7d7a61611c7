"""
Cache key codec — artifact names and remote paths for cache descriptors.

Wire format (bit-exact, shared by every client of a remote store)::

    <architecture>_<os>_<profile>_<commit>_<YYYYMMDDHHMMSS>[.<ext>]

stored remotely under ``<architecture>/<profile>/``.

Decoding matches architecture, OS and profile anchored at the front of
the name, in that order, rather than by substring search anywhere in
it. ``x86_64`` contains the separator itself, so the name cannot simply
be split on ``_``; the last two segments are always commit and
timestamp.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import TypeVar

from compcache.core.errors import CacheKeyError
from compcache.core.models.descriptor import (
    Architecture,
    BuildProfile,
    CacheDescriptor,
    OperatingSystem,
)

SEPARATOR = "_"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
TIMESTAMP_LENGTH = 14

_E = TypeVar("_E", bound=StrEnum)


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC stamp, e.g. ``20241116235010``."""
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Inverse of :func:`format_timestamp`."""
    if len(value) != TIMESTAMP_LENGTH or not value.isdigit():
        raise CacheKeyError(f"Invalid timestamp segment: {value!r}")
    try:
        return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=UTC)
    except ValueError as e:
        raise CacheKeyError(f"Invalid timestamp segment: {value!r}") from e


def _name_stem(descriptor: CacheDescriptor) -> str:
    return SEPARATOR.join(
        (descriptor.architecture.value, descriptor.operating_system.value, descriptor.profile.value)
    )


def encode(descriptor: CacheDescriptor, extension: str | None = None) -> str:
    """Artifact name of *descriptor*, with an optional ``.extension``."""
    name = SEPARATOR.join(
        (_name_stem(descriptor), descriptor.commit_hash, format_timestamp(descriptor.timestamp))
    )
    if extension:
        name = f"{name}.{extension.lstrip('.')}"
    return name


def _take_prefix(remaining: str, enum_type: type[_E], name: str) -> tuple[_E, str]:
    """Match one enumeration value at the front of *remaining*, plus its separator."""
    for member in sorted(enum_type, key=lambda m: len(m.value), reverse=True):
        token = member.value + SEPARATOR
        if remaining.startswith(token):
            return member, remaining[len(token):]
    raise CacheKeyError(f"No {enum_type.__name__} found at the start of {remaining!r} in {name!r}")


def decode(name: str) -> CacheDescriptor:
    """Rebuild the descriptor an artifact name was encoded from.

    Any directory part and trailing extension are ignored, so remote
    paths can be passed as-is.

    Raises:
        CacheKeyError: The name does not follow the cache key format.
    """
    base = name.rsplit("/", 1)[-1]
    base = base.split(".", 1)[0]

    architecture, remaining = _take_prefix(base, Architecture, name)
    operating_system, remaining = _take_prefix(remaining, OperatingSystem, name)
    profile, remaining = _take_prefix(remaining, BuildProfile, name)

    segments = remaining.split(SEPARATOR)
    if len(segments) != 2 or not segments[0]:
        raise CacheKeyError(f"Expected '<commit>_<timestamp>' after the profile in {name!r}")
    commit_hash, stamp = segments

    return CacheDescriptor(
        architecture=architecture,
        operating_system=operating_system,
        profile=profile,
        commit_hash=commit_hash,
        timestamp=parse_timestamp(stamp),
    )


def remote_path(descriptor: CacheDescriptor, extension: str | None = None) -> str:
    """Where the artifact lives in the remote store."""
    return f"{descriptor.architecture.value}/{descriptor.profile.value}/{encode(descriptor, extension)}"


def search_prefix(descriptor: CacheDescriptor) -> str:
    """Remote prefix shared by every artifact of this architecture, OS and profile."""
    return f"{descriptor.architecture.value}/{descriptor.profile.value}/{_name_stem(descriptor)}"


def commit_prefix(descriptor: CacheDescriptor) -> str:
    """Remote prefix shared by every artifact of this descriptor's commit (any timestamp)."""
    return f"{search_prefix(descriptor)}{SEPARATOR}{descriptor.commit_hash}{SEPARATOR}"


def is_artifact_name(name: str) -> bool:
    """Whether *name* decodes as a cache artifact name."""
    try:
        decode(name)
    except (CacheKeyError, ValueError):
        return False
    return True
