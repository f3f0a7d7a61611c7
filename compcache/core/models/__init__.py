"""
Domain models — Pydantic types for the compilation cache.

Re-exported here for convenient access:

    from compcache.core.models import CacheDescriptor, CacheConfig, Receipt
"""

from compcache.core.models.config import (
    ArchiveSettings,
    BackendSettings,
    BuildSettings,
    CacheConfig,
)
from compcache.core.models.descriptor import (
    Architecture,
    BuildProfile,
    CacheDescriptor,
    OperatingSystem,
    detect_platform,
)
from compcache.core.models.receipt import Receipt

__all__ = [
    # config.py
    "ArchiveSettings",
    "BackendSettings",
    "BuildSettings",
    "CacheConfig",
    # descriptor.py
    "Architecture",
    "BuildProfile",
    "CacheDescriptor",
    "OperatingSystem",
    "detect_platform",
    # receipt.py
    "Receipt",
]
