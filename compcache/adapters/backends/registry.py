"""
Backend registry — builds the configured cache backend.
"""

from __future__ import annotations

import logging

from compcache.adapters.backends.base import CacheBackend
from compcache.adapters.backends.local_dir import LocalDirectoryBackend
from compcache.adapters.backends.memory import InMemoryBackend
from compcache.core.models.config import CacheConfig

logger = logging.getLogger(__name__)

BACKEND_KINDS = ("local", "memory")


def build_backend(config: CacheConfig) -> CacheBackend:
    """Instantiate the backend named by ``backend.kind``.

    The archive format decides which extension lookups accept, so an
    artifact packed as tar is never handed to the zip packager.
    """
    kind = config.backend.kind
    extension = config.archive.format

    if kind == "local":
        backend: CacheBackend = LocalDirectoryBackend(config.backend_path(), extension=extension)
    elif kind == "memory":
        backend = InMemoryBackend(extension=extension)
    else:
        raise ValueError(f"Unknown backend kind: {kind!r} (expected one of {BACKEND_KINDS})")

    logger.debug("Using %r", backend)
    return backend
