from __future__ import annotations

import shutil
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from prbackport.models import Candidate, CherryPickOutcome, Commit, PullRequestSummary

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git executable not available")


@pytest.fixture
def make_candidate():
    def _make(number: int, hours: int | None = 0, labels=(), title: str | None = None, sha: str | None = None):
        return Candidate(
            id=f"PR_{number}",
            number=number,
            title=title or f"Change {number}",
            labels=frozenset(labels),
            merge_commit=sha or f"{number:040x}",
            merged_at=None if hours is None else T0 + timedelta(hours=hours),
        )

    return _make


class FakeRepo:
    """In-memory stand-in for prbackport.git.Repository used by the engine."""

    def __init__(self, commits: dict[str, Commit], outcomes: dict[str, CherryPickOutcome] | None = None):
        self.commits = commits
        self.outcomes = outcomes or {}
        self.picked: list[tuple[str, int | None]] = []
        self.refreshed = 0
        self.in_progress: list[bool] = []
        self.conflicts = [("src/app.py", "both modified")]

    def commit(self, sha: str) -> Commit:
        return self.commits[sha]

    def cherry_pick(self, sha: str, mainline: int | None = None) -> CherryPickOutcome:
        self.picked.append((sha, mainline))
        return self.outcomes.get(sha, CherryPickOutcome.APPLIED)

    def conflicted_entries(self):
        return list(self.conflicts)

    def refresh(self) -> None:
        self.refreshed += 1

    def is_cherry_pick_in_progress(self) -> bool:
        return self.in_progress.pop(0) if self.in_progress else False


@pytest.fixture
def fake_repo_factory():
    return FakeRepo


class FakeCatalog:
    def __init__(self, summaries: dict[int, PullRequestSummary] | None = None, fail_on_add=(), fail_on_remove=()):
        self.summaries = summaries or {}
        self.fail_on_add = set(fail_on_add)
        self.fail_on_remove = set(fail_on_remove)
        self.calls: list[tuple[str, int, str]] = []

    def lookup_label(self, name: str):
        return name

    def add_label(self, candidate, label) -> None:
        self.calls.append(("add", candidate.number, label))
        if candidate.number in self.fail_on_add:
            from prbackport.errors import CatalogUnavailable

            raise CatalogUnavailable("boom")

    def remove_label(self, candidate, label) -> None:
        self.calls.append(("remove", candidate.number, label))
        if candidate.number in self.fail_on_remove:
            from prbackport.errors import CatalogUnavailable

            raise CatalogUnavailable("remove failed")

    def lookup(self, number: int) -> PullRequestSummary:
        from prbackport.errors import PullRequestNotFound

        if number not in self.summaries:
            raise PullRequestNotFound(number)
        return self.summaries[number]


@pytest.fixture
def fake_catalog_factory():
    return FakeCatalog


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return result.stdout.strip()


class GitRepoBuilder:
    def __init__(self, path: Path):
        self.path = path
        path.mkdir(parents=True, exist_ok=True)
        git(path, "init", "-q", "-b", "main")
        git(path, "config", "user.name", "Test User")
        git(path, "config", "user.email", "test@example.com")
        git(path, "config", "commit.gpgsign", "false")
        git(path, "config", "tag.gpgsign", "false")

    def git(self, *args: str) -> str:
        return git(self.path, *args)

    def commit_file(self, name: str, content: str, message: str) -> str:
        (self.path / name).write_text(content)
        self.git("add", name)
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD")

    def merge_pr(self, number: int, name: str, content: str, base: str = "main") -> str:
        """Create a feature branch off base and merge it back with a merge commit."""
        branch = f"feature/{number}"
        self.git("checkout", "-q", "-b", branch, base)
        self.commit_file(name, content, f"Change for #{number}")
        self.git("checkout", "-q", base)
        self.git(
            "merge", "-q", "--no-ff", branch,
            "-m", f"Merge pull request #{number} from contributor/{branch}\n\nChange {number}",
        )
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepoBuilder:
    builder = GitRepoBuilder(tmp_path / "repo")
    builder.commit_file("README.md", "base\n", "Initial commit")
    return builder
