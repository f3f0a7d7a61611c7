"""
Commit lineage — which commits to check for a cached build, and in what order.

Two questions are answered here:

1. *Nearest common commit*: walking back from HEAD, which is the first
   commit that is also on the upstream remote branch? Anything built
   from that commit is useful to everyone who has it in their history.
2. *Lineage*: starting at a commit, the nearest-first list of commits to
   probe the cache for. Nearer commits are closer to the current work,
   so they are assumed to leave a smaller delta to recompile.

All raw-text parsing is done by the module-level ``parse_*`` functions
so it can be tested against fixed git output without running git.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from compcache.adapters.vcs.git import GitCli

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_BRANCH = "origin/main"
DEFAULT_UPSTREAM_DEPTH = 200
DEFAULT_LINEAGE_DEPTH = 100

# Lines of `git log --graph` that describe a commit on the leftmost lane.
LINEAGE_MARKER = "*"

# Graph connector characters, then the full hex id, then the subject.
_GRAPH_COMMIT_RE = re.compile(r"^(?P<prefix>[*|/\\_ ]+)(?P<commit>[0-9a-fA-F]+) .+")

_CURRENT_BRANCH_MARKER = "* "
_WORKTREE_BRANCH_MARKER = "+ "
_ALIAS_SEPARATOR = " -> "


@dataclass(frozen=True)
class CommitMatch:
    """The nearest local commit that is also on the upstream branch."""

    commit: str
    branches: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class PathChange:
    """One working-copy path git considers changed relative to HEAD.

    ``status`` is the ``git ls-files -t`` tag: ``?`` untracked,
    ``C`` modified, ``R`` removed, ``M`` unmerged, ``K`` to be killed…
    """

    status: str
    path: str


# ═══════════════════════════════════════════════════════════════════
#  Parsers
# ═══════════════════════════════════════════════════════════════════


def parse_branch_listing(output: str) -> list[str]:
    """Branch names from ``git branch -a --contains`` output.

    Strips the current-branch marker and drops symbolic aliases such as
    ``remotes/origin/HEAD -> origin/main`` and detached-HEAD placeholders.
    """
    branches: list[str] = []
    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue
        if raw.startswith((_CURRENT_BRANCH_MARKER, _WORKTREE_BRANCH_MARKER)):
            line = raw[2:].strip()
        if _ALIAS_SEPARATOR in line:
            continue
        if line.startswith("("):
            # (HEAD detached at 1a2b3c4), (no branch, rebasing feature)
            continue
        branches.append(line)
    return branches


def parse_graph_log(output: str) -> list[str]:
    """Commit hashes of the lineage-marker lines of a ``git log --graph`` rendering.

    Pure connector lines (``|\\``, ``|/``) and commits drawn on side lanes
    (``| * abc…``) are skipped. Order is the rendered order.
    """
    commits: list[str] = []
    for line in output.splitlines():
        if not line.startswith(LINEAGE_MARKER):
            continue
        match = _GRAPH_COMMIT_RE.match(line)
        if match is None:
            logger.warning("Problem extracting commit from: %s", line)
            continue
        commits.append(match.group("commit"))
    return commits


def parse_status_entries(output: str) -> list[PathChange]:
    """Entries of ``git ls-files -t`` output (``"<tag> <path>"`` per line)."""
    changes: list[PathChange] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        status, _, path = line.partition(" ")
        if len(status) != 1 or not path:
            logger.warning("Unexpected ls-files line: %s", line)
            continue
        changes.append(PathChange(status=status, path=path))
    return changes


def parse_commit_hash(output: str) -> str:
    """The hash from ``git show --pretty=oneline`` output (its first token)."""
    tokens = output.split()
    if not tokens:
        raise ValueError("Empty output, no commit hash to read")
    return tokens[0]


def parse_count(output: str) -> int:
    """Integer from ``git rev-list --count`` output."""
    return int(output.strip())


# ═══════════════════════════════════════════════════════════════════
#  Lineage queries
# ═══════════════════════════════════════════════════════════════════


class CommitLineage:
    """History queries over one working copy.

    Args:
        git: The git adapter to run commands through.
    """

    def __init__(self, git: GitCli):
        self.git = git

    def branches_containing(self, commit: str) -> list[str]:
        """Branches (local and ``remotes/...``) that contain *commit*."""
        return parse_branch_listing(self.git.branches_containing(commit))

    def commit_count(self, reference: str, *, first_parent: bool = False) -> int:
        """Number of commits reachable from *reference*.

        With ``first_parent`` only the first-parent chain is counted,
        which bounds how far ``<reference>~N`` can go.
        """
        return parse_count(self.git.rev_list_count(reference, first_parent=first_parent))

    def commit_hash(self, reference: str) -> str:
        """Resolve *reference* (e.g. ``HEAD~3``) to a full commit hash."""
        return parse_commit_hash(self.git.show_oneline(reference))

    def latest_commit_hash(self) -> str:
        """Hash of the current checkout."""
        return self.commit_hash("HEAD")

    def current_changes(self) -> list[PathChange]:
        """Paths git deems changed compared with HEAD."""
        return parse_status_entries(self.git.ls_files_status())

    def nearest_common_commit(
        self,
        remote_branch: str = DEFAULT_REMOTE_BRANCH,
        max_depth: int = DEFAULT_UPSTREAM_DEPTH,
    ) -> CommitMatch | None:
        """Most recent ancestor of HEAD that is also on *remote_branch*.

        Checks ``HEAD~0`` through ``HEAD~(min(max_depth, total) - 1)`` and
        stops at the first hit, so the nearest qualifying ancestor always
        wins. Returns None when no ancestor in range qualifies.
        """
        qualified = f"remotes/{remote_branch}"
        depth = min(max_depth, self.commit_count("HEAD", first_parent=True))

        for distance in range(depth):
            reference = f"HEAD~{distance}"
            branches = self.branches_containing(reference)
            logger.debug(
                "Checking branches of '%s' for '%s': %s", reference, qualified, branches
            )
            if qualified in branches:
                return CommitMatch(commit=self.commit_hash(reference), branches=branches)

        logger.info("No commit of the last %d is on '%s'", depth, qualified)
        return None

    def linearize(self, start_commit: str, max_depth: int = DEFAULT_LINEAGE_DEPTH) -> list[str]:
        """Nearest-first commits to probe the cache for, starting at *start_commit*.

        Merge commits on the leftmost lane are included; commits that only
        live on merged side branches are not. The result never exceeds
        ``min(max_depth, count)`` entries.
        """
        limit = min(max_depth, self.commit_count(start_commit, first_parent=True))
        steps = limit - 1
        if steps < 1:
            return [start_commit]

        output = self.git.graph_log(f"{start_commit}~{steps}..{start_commit}")
        commits = parse_graph_log(output)
        if len(commits) > limit:
            commits = commits[:limit]
        logger.debug("Lineage from %s: %d commits", start_commit, len(commits))
        return commits
