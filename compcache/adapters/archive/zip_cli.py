"""
Zip packager — drives the ``zip`` / ``unzip`` command-line tools.

Entries are stored, not deflated (``-0``). The password, when set, uses
zip's legacy encryption.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import time
from pathlib import Path

from compcache.adapters.archive.base import ArchivePackager, ensure_exists
from compcache.core.models.receipt import Receipt

logger = logging.getLogger(__name__)


class ZipCliPackager(ArchivePackager):
    """Pack and unpack with the external zip tools.

    Args:
        timeout: Seconds either tool may run before it is abandoned.
    """

    extension = "zip"

    def __init__(self, timeout: int = 600):
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "zip"

    @staticmethod
    def is_available() -> bool:
        return shutil.which("zip") is not None and shutil.which("unzip") is not None

    def pack(
        self,
        directory: Path,
        archive_path: Path,
        password: str | None = None,
        *,
        root: Path | None = None,
    ) -> Receipt:
        directory = ensure_exists(directory, "Directory to archive")
        base = self._entry_root(directory, root)
        archive_path = Path(archive_path).resolve()

        folder = directory.resolve().relative_to(base.resolve())
        argv = ["zip", str(archive_path)]
        if password:
            argv += ["--password", password]
        argv += ["-r", str(folder), "--quiet", "-0"]

        receipt = self._run("pack", argv, cwd=base, shown=self._mask(argv, "--password"))
        if receipt.ok:
            receipt = receipt.model_copy(update={"path": archive_path})
            logger.info("Packed %s → %s", folder, archive_path.name)
        return receipt

    def unpack(self, archive_path: Path, target_dir: Path, password: str | None = None) -> Receipt:
        archive_path = ensure_exists(archive_path, "Archive to extract")
        target_dir = ensure_exists(target_dir, "Extraction target")

        # An empty -P makes an encrypted archive fail instead of prompting
        argv = ["unzip", "-o", "-qq", "-P", password or ""]
        argv += [str(archive_path), "-d", str(target_dir)]

        receipt = self._run("unpack", argv, cwd=target_dir, shown=self._mask(argv, "-P"))
        if receipt.ok:
            receipt = receipt.model_copy(update={"path": Path(target_dir)})
            logger.info("Unpacked %s into %s", Path(archive_path).name, target_dir)
        return receipt

    # ── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _mask(argv: list[str], flag: str) -> str:
        """Command line for logs, with the value after *flag* hidden."""
        shown = list(argv)
        if flag in shown:
            index = shown.index(flag) + 1
            if index < len(shown):
                shown[index] = "****"
        return " ".join(shown)

    def _run(self, operation: str, argv: list[str], *, cwd: Path, shown: str) -> Receipt:
        logger.debug("Executing: %s (cwd=%s)", shown, cwd)
        start = time.monotonic()
        try:
            result = subprocess.run(
                argv,
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            return Receipt.failure(
                operation,
                f"{argv[0]} timed out after {self.timeout}s",
                metadata={"command": shown},
            )
        except FileNotFoundError:
            return Receipt.failure(
                operation, f"{argv[0]} executable not found", metadata={"command": shown}
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            return Receipt.failure(
                operation,
                stderr or f"{argv[0]} exited with code {result.returncode}",
                duration_ms=elapsed_ms,
                metadata={"command": shown, "return_code": result.returncode},
            )
        return Receipt.success(
            operation, duration_ms=elapsed_ms, metadata={"command": shown, "return_code": 0}
        )
