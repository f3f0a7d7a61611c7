"""
Archive packager base — turning a build directory into one file and back.

Packagers validate their inputs up front and raise ``PreconditionError``
for missing paths: that is the caller's mistake, not a tool failure.
Anything that goes wrong inside the archive tool comes back as a failed
Receipt.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path

from compcache.core.errors import PreconditionError
from compcache.core.models.receipt import Receipt


def ensure_exists(path: str | Path, description: str) -> Path:
    """Return *path* as a Path, or raise if nothing is there.

    Raises:
        PreconditionError: Naming the path and the current directory,
            since relative paths are the usual culprit.
    """
    path = Path(path)
    if not path.exists():
        raise PreconditionError(
            f"{description} ('{path}') doesn't exist... Current directory: {os.getcwd()}"
        )
    return path


class ArchivePackager(ABC):
    """Pack a directory into an archive file, unpack it elsewhere.

    Entry names are stored relative to ``root`` (the directory's parent by
    default), so unpacking at the same root restores the directory in
    place.
    """

    extension: str = ""

    @property
    @abstractmethod
    def name(self) -> str:
        """The packager identifier (e.g., 'zip', 'tar')."""

    @abstractmethod
    def pack(
        self,
        directory: Path,
        archive_path: Path,
        password: str | None = None,
        *,
        root: Path | None = None,
    ) -> Receipt:
        """Write *directory* (recursively, uncompressed) into *archive_path*."""

    @abstractmethod
    def unpack(self, archive_path: Path, target_dir: Path, password: str | None = None) -> Receipt:
        """Extract *archive_path* into *target_dir*, overwriting existing files."""

    def _entry_root(self, directory: Path, root: Path | None) -> Path:
        """Where archive entry names are relative to; *directory* must sit under it."""
        base = Path(root) if root is not None else directory.parent
        try:
            directory.resolve().relative_to(base.resolve())
        except ValueError as e:
            raise PreconditionError(f"{directory} is not inside archive root {base}") from e
        return base

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
