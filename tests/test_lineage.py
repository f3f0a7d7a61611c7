"""
Tests for commit lineage — git output parsing and the bounded history walks.

git is never run: ``subprocess.run`` in the git adapter is replaced by a
script of expected commands. Any command outside the script fails the
test, which is how the early-exit properties are checked.
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from compcache.adapters.vcs.git import GitCli
from compcache.core.errors import VersionControlError
from compcache.core.services.lineage import (
    CommitLineage,
    CommitMatch,
    PathChange,
    parse_branch_listing,
    parse_commit_hash,
    parse_graph_log,
    parse_status_entries,
)

_RUN = "compcache.adapters.vcs.git.subprocess.run"

_LS_FILES = ("ls-files", "--others", "--modified", "--deleted", "--exclude-standard", "-t")

_SIMPLE_COMMITS = [
    "ad2498bb16c05a80308dd1fab9ca86bea35144df",
    "eee4c8407e59d97c41f4a601380e556a2824098e",
    "017cccb54cf1eb0189c6c6f5754249dfd211d0f2",
]
_MERGE_COMMITS = [
    "eeedf35011dec8590a77bac2cad8ddc76cd5e2b0",
    "af1e30fefa12a43ef1fc1843daa714307e29835a",
    "b2aec75a3dc2fe3c38b4353b99262e853033c9e5",
    "201f5f6154cf037711a9b75f5486c48457559eed",
    "c2c82e832e56646fa9d1bc3965a959b6f89424d0",
    "cb0fa613a1f02e9bb619377776e60fcf7b8e6680",
    "a24d3328e776ea38f6584fa77c696543d1b5983f",
]


def _first_lines(path: Path, count: int) -> str:
    return "".join(path.read_text().splitlines(keepends=True)[:count])


def _scripted_git(responses: dict[tuple[str, ...], str]):
    """side_effect for subprocess.run answering only the scripted git commands."""

    def run(argv, **kwargs):
        assert argv[0] == "git"
        key = tuple(argv[1:])
        if key not in responses:
            raise AssertionError(f"unexpected git call: {' '.join(argv)}")
        return MagicMock(returncode=0, stdout=responses[key], stderr="")

    return run


def _count(reference: str, total: int) -> dict[tuple[str, ...], str]:
    return {("rev-list", "--count", "--first-parent", reference): f"{total}\n"}


def _graph(commit_range: str, output: str) -> dict[tuple[str, ...], str]:
    return {
        ("log", "--oneline", "--graph", "--no-abbrev-commit", "--no-color", commit_range): output
    }


def _branches(reference: str, output: str) -> dict[tuple[str, ...], str]:
    return {("branch", "-a", "--no-color", "--contains", reference): output}


def _show(reference: str, output: str) -> dict[tuple[str, ...], str]:
    return {("show", reference, "--no-patch", "--pretty=oneline", "--no-abbrev-commit"): output}


def _lineage() -> CommitLineage:
    return CommitLineage(GitCli(cwd="/repo"))


# ── Parsers ──────────────────────────────────────────────────────────


class TestParseBranchListing:
    def test_fixture(self, fixtures_dir: Path):
        text = (fixtures_dir / "git_branch_contains_example").read_text()
        assert parse_branch_listing(text) == [
            "master",
            "pri-706-frufra",
            "remotes/origin/fraaaa",
            "remotes/origin/dsfsafsagfsg17",
        ]

    def test_drops_detached_head(self):
        text = "* (HEAD detached at 1a2b3c4)\n  main\n  remotes/origin/main\n"
        assert parse_branch_listing(text) == ["main", "remotes/origin/main"]

    def test_strips_worktree_marker(self):
        assert parse_branch_listing("+ hotfix\n* main\n") == ["hotfix", "main"]

    def test_empty(self):
        assert parse_branch_listing("") == []


class TestParseGraphLog:
    def test_simple_commits(self, fixtures_dir: Path):
        text = _first_lines(fixtures_dir / "git_log_oneline_graph_example", 3)
        assert parse_graph_log(text) == _SIMPLE_COMMITS

    def test_skips_side_lanes_and_connectors(self, fixtures_dir: Path):
        # The first 16 commits occupy 25 lines; only 10 sit on the leftmost lane
        text = _first_lines(fixtures_dir / "git_log_oneline_graph_example", 25)
        assert parse_graph_log(text) == _SIMPLE_COMMITS + _MERGE_COMMITS

    def test_unparseable_star_line_is_dropped(self, caplog):
        text = "* not-a-hash subject\n* abc123 Real commit\n"
        with caplog.at_level("WARNING"):
            assert parse_graph_log(text) == ["abc123"]
        assert "Problem extracting commit" in caplog.text

    def test_empty(self):
        assert parse_graph_log("") == []


class TestParseStatusEntries:
    def test_fixture(self, fixtures_dir: Path):
        entries = parse_status_entries((fixtures_dir / "git_ls_files_example").read_text())
        untracked = [e for e in entries if e.status == "?"]
        modified = [e for e in entries if e.status == "C"]
        assert len(entries) == 7
        assert len(untracked) == 5
        assert len(modified) == 2
        assert PathChange(status="C", path="mix.lock") in modified

    def test_path_with_spaces(self):
        assert parse_status_entries("? docs/release notes.md\n") == [
            PathChange(status="?", path="docs/release notes.md")
        ]


class TestParseCommitHash:
    def test_first_token(self, fixtures_dir: Path):
        text = (fixtures_dir / "git_show_example").read_text()
        assert parse_commit_hash(text) == "d4c3b2a1f0e9d8c7b6a5f4e3d2c1b0a9f8e7d6c5"

    def test_empty_output(self):
        with pytest.raises(ValueError):
            parse_commit_hash("\n")


# ── Working copy ─────────────────────────────────────────────────────


class TestCurrentChanges:
    def test_groups(self, fixtures_dir: Path):
        output = (fixtures_dir / "git_ls_files_example").read_text()
        with patch(_RUN, side_effect=_scripted_git({_LS_FILES: output})):
            changes = _lineage().current_changes()

        statuses = sorted({c.status for c in changes})
        assert statuses == ["?", "C"]
        assert len([c for c in changes if c.status == "?"]) == 5
        assert len([c for c in changes if c.status == "C"]) == 2

    def test_no_changes(self):
        with patch(_RUN, side_effect=_scripted_git({_LS_FILES: ""})):
            assert _lineage().current_changes() == []


# ── Nearest common commit ────────────────────────────────────────────


class TestNearestCommonCommit:
    def test_returns_first_ancestor_on_remote(self, fixtures_dir: Path):
        on_remote = "  remotes/origin/main\n  local-branch\n"
        script = {**_count("HEAD", 200)}
        for distance in range(3):
            script.update(_branches(f"HEAD~{distance}", "* local-branch\n"))
        script.update(_branches("HEAD~3", on_remote))
        script.update(_show("HEAD~3", (fixtures_dir / "git_show_example").read_text()))

        with patch(_RUN, side_effect=_scripted_git(script)) as mock_run:
            match = _lineage().nearest_common_commit("origin/main")

        assert match == CommitMatch(
            commit="d4c3b2a1f0e9d8c7b6a5f4e3d2c1b0a9f8e7d6c5",
            branches=["remotes/origin/main", "local-branch"],
        )
        # count + 4 branch lookups + show, nothing after the hit
        assert mock_run.call_count == 6

    def test_nearest_ancestor_wins(self):
        both = "  remotes/origin/main\n"
        script = {**_count("HEAD", 10)}
        script.update(_branches("HEAD~0", "* topic\n"))
        script.update(_branches("HEAD~1", both))
        script.update(_show("HEAD~1", "aaaa1111 Nearer\n"))
        # HEAD~2 is also on the remote but must never be asked about

        with patch(_RUN, side_effect=_scripted_git(script)):
            match = _lineage().nearest_common_commit("origin/main")

        assert match is not None
        assert match.commit == "aaaa1111"

    def test_not_found_within_depth(self):
        script = {**_count("HEAD", 500)}
        for distance in range(5):
            script.update(_branches(f"HEAD~{distance}", "* topic\n  remotes/origin/topic\n"))

        with patch(_RUN, side_effect=_scripted_git(script)) as mock_run:
            assert _lineage().nearest_common_commit("origin/main", max_depth=5) is None
        assert mock_run.call_count == 1 + 5

    def test_depth_bounded_by_history(self):
        script = {**_count("HEAD", 2)}
        script.update(_branches("HEAD~0", "* topic\n"))
        script.update(_branches("HEAD~1", "* topic\n"))

        with patch(_RUN, side_effect=_scripted_git(script)) as mock_run:
            assert _lineage().nearest_common_commit("origin/main", max_depth=200) is None
        assert mock_run.call_count == 3

    def test_other_remote_branch(self):
        script = {**_count("HEAD", 5)}
        script.update(_branches("HEAD~0", "  remotes/origin/main\n  remotes/upstream/develop\n"))
        script.update(_show("HEAD~0", "bbbb2222 Tip\n"))

        with patch(_RUN, side_effect=_scripted_git(script)):
            match = _lineage().nearest_common_commit("upstream/develop")
        assert match is not None
        assert match.commit == "bbbb2222"


# ── Linearize ────────────────────────────────────────────────────────


class TestLinearize:
    def test_simple_commits(self, fixtures_dir: Path):
        graph = _first_lines(fixtures_dir / "git_log_oneline_graph_example", 3)
        script = {**_count("HEAD", 3), **_graph("HEAD~2..HEAD", graph)}

        with patch(_RUN, side_effect=_scripted_git(script)):
            assert _lineage().linearize("HEAD") == _SIMPLE_COMMITS

    def test_includes_merge_commits(self, fixtures_dir: Path):
        graph = _first_lines(fixtures_dir / "git_log_oneline_graph_example", 25)
        script = {**_count("HEAD", 16), **_graph("HEAD~15..HEAD", graph)}

        with patch(_RUN, side_effect=_scripted_git(script)):
            commits = _lineage().linearize("HEAD")

        assert commits == _SIMPLE_COMMITS + _MERGE_COMMITS

    def test_never_longer_than_max_depth(self, fixtures_dir: Path):
        graph = _first_lines(fixtures_dir / "git_log_oneline_graph_example", 3)
        script = {**_count("abc123", 400), **_graph("abc123~1..abc123", graph)}

        with patch(_RUN, side_effect=_scripted_git(script)):
            commits = _lineage().linearize("abc123", max_depth=2)

        assert commits == _SIMPLE_COMMITS[:2]

    def test_root_commit(self):
        with patch(_RUN, side_effect=_scripted_git(_count("abc123", 1))) as mock_run:
            assert _lineage().linearize("abc123") == ["abc123"]
        assert mock_run.call_count == 1


# ── Git adapter ──────────────────────────────────────────────────────


class TestGitCli:
    def test_runs_in_working_copy(self):
        with patch(_RUN) as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="42\n", stderr="")
            assert GitCli(cwd="/repo", timeout=7).rev_list_count("HEAD") == "42\n"

        mock_run.assert_called_once_with(
            ["git", "rev-list", "--count", "HEAD"],
            cwd="/repo",
            capture_output=True,
            text=True,
            timeout=7,
        )

    def test_nonzero_exit_raises(self):
        with patch(_RUN) as mock_run:
            mock_run.return_value = MagicMock(
                returncode=128, stdout="", stderr="fatal: not a git repository\n"
            )
            with pytest.raises(VersionControlError) as exc_info:
                GitCli().show_oneline("HEAD")

        error = exc_info.value
        assert error.returncode == 128
        assert "not a git repository" in str(error)
        assert error.argv[:2] == ["git", "show"]

    def test_missing_git(self):
        with patch(_RUN, side_effect=FileNotFoundError("git")):
            with pytest.raises(VersionControlError, match="not found"):
                GitCli().ls_files_status()

    def test_error_is_fatal_for_lineage(self):
        with patch(_RUN) as mock_run:
            mock_run.return_value = MagicMock(returncode=128, stdout="", stderr="bad revision")
            with pytest.raises(VersionControlError):
                _lineage().nearest_common_commit("origin/main")
