"""
Error taxonomy for the compilation cache.

Only fatal conditions are exceptions. Normal outcomes (no upstream
commit in range, cache miss, backend or archive failures) are returned
as values (``None``, ``Resolution`` or ``Receipt``) and never raised.
"""

from __future__ import annotations

from typing import Any


class CompCacheError(Exception):
    """Base class for every error raised by compcache."""


class PreconditionError(CompCacheError):
    """A required local path is missing (build directory, archive, target).

    This is a configuration problem on the caller's side, not a backend
    failure, so it is never retried.
    """


class VersionControlError(CompCacheError):
    """A git command exited with a non-zero status.

    The working copy is assumed not to be a valid repository, or the
    reference does not exist. Always fatal.
    """

    def __init__(
        self,
        message: str,
        *,
        argv: list[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.argv = argv or []
        self.returncode = returncode
        self.stderr = stderr

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "argv": " ".join(self.argv),
            "returncode": self.returncode,
            "stderr": self.stderr,
        }


class CacheKeyError(CompCacheError, ValueError):
    """An artifact name does not follow the cache key format."""
