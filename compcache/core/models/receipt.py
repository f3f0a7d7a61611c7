"""
Receipt model — the result contract of every collaborator call.

Backends and archive packagers return Receipts instead of raising for
expected failures. A lookup that finds nothing is ``not_found``; a call
that could not complete (auth, network, tool exit code) is ``failed``.
Keeping the two apart lets the orchestrator retry the latter only.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from compcache.core.models.descriptor import CacheDescriptor


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Receipt(BaseModel):
    """Outcome of one backend or archive operation."""

    operation: str                  # e.g. 'upload', 'fetch', 'pack'
    status: Literal["ok", "not_found", "failed"] = "ok"

    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    path: Path | None = None        # local file produced or consumed
    remote_path: str | None = None
    descriptor: CacheDescriptor | None = None
    descriptors: list[CacheDescriptor] = Field(default_factory=list)

    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded."""
        return self.status == "ok"

    @property
    def not_found(self) -> bool:
        """Whether the operation definitely found nothing."""
        return self.status == "not_found"

    @property
    def failed(self) -> bool:
        """Whether the operation could not complete."""
        return self.status == "failed"

    @classmethod
    def success(cls, operation: str, **kwargs: Any) -> Receipt:
        """Create a success receipt."""
        return cls(operation=operation, status="ok", **kwargs)

    @classmethod
    def missing(cls, operation: str, reason: str = "not found", **kwargs: Any) -> Receipt:
        """Create a receipt for an absent object."""
        return cls(operation=operation, status="not_found", error=reason, **kwargs)

    @classmethod
    def failure(cls, operation: str, error: str, **kwargs: Any) -> Receipt:
        """Create a failure receipt."""
        return cls(operation=operation, status="failed", error=error, **kwargs)
