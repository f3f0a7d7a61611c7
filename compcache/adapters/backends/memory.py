"""
In-memory backend — a remote store that lives in a dict.

Used by tests and by ``backend.kind: memory`` for dry runs. Keeps a
call log and can be told to fail, so orchestration can be exercised
without a network.
"""

from __future__ import annotations

from pathlib import Path

from compcache.adapters.backends.base import CacheBackend
from compcache.core.models.receipt import Receipt


class InMemoryBackend(CacheBackend):
    """Dict-backed cache backend with failure injection.

    Args:
        extension: Only consider artifacts with this extension in lookups.
        available: When False, every call fails as if the store were down.
    """

    def __init__(self, extension: str | None = None, available: bool = True):
        self.extension = extension
        self.available = available
        self.objects: dict[str, bytes] = {}
        self.setup_calls = 0
        self._call_log: list[tuple[str, str]] = []
        self._failing: set[str] = set()

    @property
    def name(self) -> str:
        return "memory"

    @property
    def call_log(self) -> list[tuple[str, str]]:
        """``(operation, argument)`` for every call received."""
        return self._call_log

    def calls(self, operation: str) -> list[str]:
        """Arguments of every call to *operation*, in order."""
        return [arg for op, arg in self._call_log if op == operation]

    def fail_on(self, *operations: str) -> None:
        """Make the given operations ('upload', 'download', 'list') fail."""
        self._failing.update(operations)

    def put(self, remote_path: str, content: bytes = b"") -> None:
        """Seed an object directly, bypassing the call log."""
        self.objects[remote_path] = content

    def reset(self) -> None:
        """Clear call log and injected failures (objects are kept)."""
        self._call_log.clear()
        self._failing.clear()
        self.setup_calls = 0

    # ── Contract ────────────────────────────────────────────────

    def setup(self) -> None:
        self.setup_calls += 1

    def upload(self, local_path: Path, remote_path: str) -> Receipt:
        self._call_log.append(("upload", remote_path))
        if not self._usable("upload"):
            return Receipt.failure("upload", "[memory] upload failed", remote_path=remote_path)
        data = Path(local_path).read_bytes()
        self.objects[remote_path] = data
        return Receipt.success(
            "upload",
            path=Path(local_path),
            remote_path=remote_path,
            metadata={"size_bytes": len(data)},
        )

    def download(self, remote_path: str, local_path: Path) -> Receipt:
        self._call_log.append(("download", remote_path))
        if not self._usable("download"):
            return Receipt.failure("download", "[memory] download failed", remote_path=remote_path)
        if remote_path not in self.objects:
            return Receipt.missing("download", f"No object at {remote_path}", remote_path=remote_path)
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(self.objects[remote_path])
        return Receipt.success("download", path=local_path, remote_path=remote_path)

    def list_objects(self, prefix: str) -> list[str] | None:
        self._call_log.append(("list", prefix))
        if not self._usable("list"):
            return None
        return sorted(key for key in self.objects if key.startswith(prefix))

    def _usable(self, operation: str) -> bool:
        return self.available and operation not in self._failing
