"""
Archive packagers — build directories to single files and back.
"""

from __future__ import annotations

from compcache.adapters.archive.base import ArchivePackager, ensure_exists
from compcache.adapters.archive.tar_vault import TarVaultPackager
from compcache.adapters.archive.zip_cli import ZipCliPackager
from compcache.core.models.config import CacheConfig

__all__ = [
    "ArchivePackager",
    "TarVaultPackager",
    "ZipCliPackager",
    "build_packager",
    "ensure_exists",
]


def build_packager(config: CacheConfig) -> ArchivePackager:
    """The packager for ``archive.format``."""
    if config.archive.format == "tar":
        return TarVaultPackager()
    return ZipCliPackager()
