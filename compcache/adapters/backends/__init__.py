"""
Cache backends — remote stores for build artifacts.
"""

from compcache.adapters.backends.base import CacheBackend
from compcache.adapters.backends.local_dir import LocalDirectoryBackend
from compcache.adapters.backends.memory import InMemoryBackend
from compcache.adapters.backends.registry import build_backend

__all__ = [
    "CacheBackend",
    "InMemoryBackend",
    "LocalDirectoryBackend",
    "build_backend",
]
