"""
Build invoker — runs the project's compile command.

The cache never compiles anything itself; it shells out to whatever the
project uses (``make``, ``mix compile``, ``cargo build``…) and only
interprets the exit status.
"""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from compcache.core.models.config import BuildSettings
from compcache.core.models.descriptor import BuildProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileOutcome:
    """Result of one compile invocation.

    ``noop`` means the build tool reported there was nothing to do, which
    is as good as a success for the caller.
    """

    status: Literal["success", "noop", "failed"]
    detail: str = ""
    duration_ms: int = 0
    return_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


class BuildInvoker:
    """Runs ``build.command`` for a profile.

    Args:
        settings: The ``build:`` section of the config.
        cwd: Directory to run the command in (the project root).
    """

    def __init__(self, settings: BuildSettings, cwd: str | Path = "."):
        self.settings = settings
        self.cwd = Path(cwd)

    def compile(self, profile: BuildProfile | str) -> CompileOutcome:
        """Compile *profile*; never raises for a failing build."""
        try:
            argv = self.settings.argv(profile)
        except ValueError as e:
            return CompileOutcome(status="failed", detail=f"Invalid build command: {e}")
        if not argv:
            return CompileOutcome(status="failed", detail="Build command is empty")

        logger.info("Compiling %s: %s", BuildProfile(profile).value, " ".join(argv))
        start = time.monotonic()
        try:
            result = subprocess.run(
                argv,
                cwd=str(self.cwd),
                capture_output=True,
                text=True,
                timeout=self.settings.timeout,
            )
        except subprocess.TimeoutExpired:
            return CompileOutcome(
                status="failed",
                detail=f"Build timed out after {self.settings.timeout}s",
            )
        except OSError as e:
            return CompileOutcome(status="failed", detail=f"Cannot run {argv[0]}: {e}")

        elapsed_ms = int((time.monotonic() - start) * 1000)
        code = result.returncode

        if code == 0:
            return CompileOutcome("success", duration_ms=elapsed_ms, return_code=code)
        if self.settings.noop_exit_code is not None and code == self.settings.noop_exit_code:
            logger.info("Build reported nothing to compile")
            return CompileOutcome("noop", duration_ms=elapsed_ms, return_code=code)

        stderr = (result.stderr or "").strip()
        logger.error("Build failed with exit code %d", code)
        return CompileOutcome(
            "failed",
            detail=stderr or f"Build exited with code {code}",
            duration_ms=elapsed_ms,
            return_code=code,
        )
