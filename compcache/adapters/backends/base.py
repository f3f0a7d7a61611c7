"""
Cache backend base — the contract between the orchestrator and remote storage.

The orchestrator only talks to storage through this interface, never to
a concrete store directly.

To add a backend:
    1. Subclass CacheBackend
    2. Implement name, setup, upload, download, list_objects
    3. Register it in ``compcache.adapters.backends.registry``

``fetch_by_descriptor`` and ``list`` are built on ``list_objects`` and
only need overriding when the store can answer them more cheaply.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from compcache.core.errors import CacheKeyError
from compcache.core.models.descriptor import (
    Architecture,
    BuildProfile,
    CacheDescriptor,
    OperatingSystem,
)
from compcache.core.models.receipt import Receipt
from compcache.core.services import cache_key

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract base class for remote artifact stores.

    Methods return Receipts. They should not raise for storage errors:
    a lookup that could not be answered is ``failed``, an object that
    does not exist is ``not_found``.

    Subclasses set ``extension`` (e.g. "zip") to restrict lookups to
    artifacts of one archive format.
    """

    extension: str | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """The backend identifier (e.g., 'local', 'memory')."""

    @abstractmethod
    def setup(self) -> None:
        """Prepare for requests (authentication, sessions). Must be idempotent."""

    @abstractmethod
    def upload(self, local_path: Path, remote_path: str) -> Receipt:
        """Store the file at *local_path* under *remote_path*.

        The local file usually lives in a scratch location while the
        remote path follows ``<arch>/<profile>/<artifact name>``.
        """

    @abstractmethod
    def download(self, remote_path: str, local_path: Path) -> Receipt:
        """Fetch *remote_path* into *local_path*; the receipt carries the local path."""

    @abstractmethod
    def list_objects(self, prefix: str) -> list[str] | None:
        """Remote paths starting with *prefix*, or None if the store could not be listed."""

    # ── Derived operations ──────────────────────────────────────

    def fetch_by_descriptor(self, descriptor: CacheDescriptor) -> Receipt:
        """Newest artifact built for the descriptor's commit, architecture, OS and profile.

        The descriptor's own timestamp is ignored; only the encoded one of
        the stored artifact is returned.
        """
        prefix = cache_key.commit_prefix(descriptor)
        objects = self.list_objects(prefix)
        if objects is None:
            return Receipt.failure("fetch", f"Could not list '{prefix}' on {self.name}")

        found = self._decode_all(objects)
        if not found:
            return Receipt.missing("fetch", f"No artifact for commit {descriptor.commit_hash}")

        newest_path, newest = found[0]
        return Receipt.success("fetch", descriptor=newest, remote_path=newest_path)

    def list(
        self,
        profile: BuildProfile | str,
        *,
        architecture: Architecture | str | None = None,
        operating_system: OperatingSystem | str | None = None,
    ) -> Receipt:
        """Every artifact of *profile* for one platform, newest first."""
        probe = CacheDescriptor.create(
            profile,
            "probe",
            architecture=architecture,
            operating_system=operating_system,
        )
        prefix = cache_key.search_prefix(probe) + cache_key.SEPARATOR
        objects = self.list_objects(prefix)
        if objects is None:
            return Receipt.failure("list", f"Could not list '{prefix}' on {self.name}")

        found = self._decode_all(objects)
        return Receipt.success("list", descriptors=[d for _, d in found])

    def _decode_all(self, paths: list[str]) -> list[tuple[str, CacheDescriptor]]:
        """Decode artifact paths, skipping foreign objects; newest first."""
        decoded: list[tuple[str, CacheDescriptor]] = []
        for path in paths:
            if self.extension and not path.endswith(f".{self.extension}"):
                continue
            try:
                decoded.append((path, cache_key.decode(path)))
            except (CacheKeyError, ValueError):
                logger.debug("Ignoring non-artifact object: %s", path)
        decoded.sort(key=lambda item: item[1].timestamp, reverse=True)
        return decoded

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
