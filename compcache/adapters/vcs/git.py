"""
Git adapter — raw history queries for the commit lineage.

Every method runs one git command and returns its stdout untouched;
parsing lives in ``compcache.core.services.lineage`` so it can be tested
against fixed text. Uses the git CLI, not a library binding.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from compcache.core.errors import VersionControlError

logger = logging.getLogger(__name__)


class GitCli:
    """Thin wrapper over the ``git`` executable.

    Any non-zero exit raises ``VersionControlError``: the working copy is
    not a repository, or the reference does not exist. There is nothing
    sensible to fall back to in either case.
    """

    def __init__(self, cwd: str | Path = ".", timeout: int = 30):
        self.cwd = Path(cwd)
        self.timeout = timeout

    @staticmethod
    def is_available() -> bool:
        return shutil.which("git") is not None

    # ── Queries ─────────────────────────────────────────────────

    def ls_files_status(self) -> str:
        """Untracked, modified and deleted paths, tagged with their status letter."""
        return self.run(
            "ls-files", "--others", "--modified", "--deleted", "--exclude-standard", "-t"
        )

    def graph_log(self, commit_range: str) -> str:
        """One-line graph rendering of *commit_range* with full hashes."""
        return self.run(
            "log", "--oneline", "--graph", "--no-abbrev-commit", "--no-color", commit_range
        )

    def branches_containing(self, commit: str) -> str:
        """Local and remote branches that contain *commit*."""
        return self.run("branch", "-a", "--no-color", "--contains", commit)

    def rev_list_count(self, reference: str, first_parent: bool = False) -> str:
        """Number of commits reachable from *reference*."""
        if first_parent:
            return self.run("rev-list", "--count", "--first-parent", reference)
        return self.run("rev-list", "--count", reference)

    def show_oneline(self, reference: str) -> str:
        """``<full hash> <subject>`` of the commit *reference* points at."""
        return self.run("show", reference, "--no-patch", "--pretty=oneline", "--no-abbrev-commit")

    # ── Helpers ─────────────────────────────────────────────────

    def run(self, *args: str) -> str:
        """Run a git command and return stdout."""
        argv = ["git", *args]
        logger.debug("Running: %s (cwd=%s)", " ".join(argv), self.cwd)
        try:
            result = subprocess.run(
                argv,
                cwd=str(self.cwd),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise VersionControlError(
                f"git {args[0]} timed out after {self.timeout}s",
                argv=argv,
            ) from e
        except FileNotFoundError as e:
            raise VersionControlError("git executable not found", argv=argv) from e

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise VersionControlError(
                stderr or f"git {args[0]} failed",
                argv=argv,
                returncode=result.returncode,
                stderr=stderr,
            )
        return result.stdout
