"""
Local directory backend — a filesystem path used as the remote store.

Suits a shared mount (NFS, SMB, a CI cache volume) or a per-machine
cache. Objects live at ``<root>/<remote path>``; writes go to a temp
file in the target directory and are renamed into place, so readers
never see a half-written artifact.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from pathlib import Path

from compcache.adapters.backends.base import CacheBackend
from compcache.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class LocalDirectoryBackend(CacheBackend):
    """Cache backend over a directory tree.

    Args:
        root: Directory holding ``<arch>/<profile>/<artifact>`` files.
        extension: Only consider artifacts with this extension in lookups.
        create: Create *root* on setup if it does not exist.
    """

    def __init__(self, root: str | Path, extension: str | None = None, create: bool = True):
        self.root = Path(root)
        self.extension = extension
        self.create = create

    @property
    def name(self) -> str:
        return "local"

    def setup(self) -> None:
        if self.create:
            self.root.mkdir(parents=True, exist_ok=True)
        logger.debug("Local backend rooted at %s", self.root)

    def upload(self, local_path: Path, remote_path: str) -> Receipt:
        start = time.monotonic()
        target = self._resolve(remote_path)
        if target is None:
            return Receipt.failure("upload", f"Remote path escapes the store: {remote_path}")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload_", suffix=".tmp")
            os.close(fd)
            tmp = Path(tmp_name)
            try:
                shutil.copyfile(local_path, tmp)
                tmp.replace(target)
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
        except OSError as e:
            return Receipt.failure("upload", f"Cannot write {target}: {e}", remote_path=remote_path)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        size = target.stat().st_size
        logger.info("Uploaded %s → %s (%d bytes)", Path(local_path).name, remote_path, size)
        return Receipt.success(
            "upload",
            path=Path(local_path),
            remote_path=remote_path,
            duration_ms=elapsed_ms,
            metadata={"size_bytes": size, "full_path": str(target)},
        )

    def download(self, remote_path: str, local_path: Path) -> Receipt:
        start = time.monotonic()
        source = self._resolve(remote_path)
        if source is None:
            return Receipt.failure("download", f"Remote path escapes the store: {remote_path}")
        if not source.is_file():
            return Receipt.missing("download", f"No object at {remote_path}", remote_path=remote_path)

        local_path = Path(local_path)
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, local_path)
        except OSError as e:
            return Receipt.failure("download", f"Cannot read {source}: {e}", remote_path=remote_path)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        return Receipt.success(
            "download", path=local_path, remote_path=remote_path, duration_ms=elapsed_ms
        )

    def list_objects(self, prefix: str) -> list[str] | None:
        directory, _, name_prefix = prefix.rpartition("/")
        folder = self._resolve(directory) if directory else self.root
        if folder is None:
            return None
        if not folder.is_dir():
            # Nothing was ever uploaded for this architecture/profile.
            return [] if self.root.is_dir() else None

        try:
            entries = sorted(p.name for p in folder.iterdir() if p.is_file())
        except OSError as e:
            logger.warning("Cannot list %s: %s", folder, e)
            return None
        return [
            f"{directory}/{name}" if directory else name
            for name in entries
            if name.startswith(name_prefix) and not name.startswith(".")
        ]

    def _resolve(self, remote_path: str) -> Path | None:
        """Map a remote path onto the store, refusing anything outside it."""
        root = self.root.resolve()
        target = (root / remote_path).resolve()
        try:
            target.relative_to(root)
        except ValueError:
            return None
        return target
