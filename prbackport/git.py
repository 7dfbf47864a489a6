"""
Thin wrapper around the git command line for the working repository.
"""

import logging
import os
import subprocess
from collections.abc import Iterator

from prbackport.errors import GitError
from prbackport.models import CherryPickOutcome, Commit, Tag

logger = logging.getLogger(__name__)

# Field and record separators for --format output
_FS = "\x1f"
_RS = "\x1e"


def run(cmd: list[str], cwd: str | None = None, check: bool = True) -> subprocess.CompletedProcess:
    """Run a command and return the result."""
    result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
    if check and result.returncode != 0:
        raise GitError(f"Command failed: {' '.join(cmd)}\n{result.stderr.strip()}")
    return result


# Git status --porcelain: first two chars = index + work tree; unmerged codes:
# UU = both modified, DU = deleted by us/updated by them, UD = updated by us/deleted by them,
# DD = both deleted, AA = both added, AU/UA = added by us/them
_CONFLICT_TYPE_LABELS = {
    "UU": "both modified",
    "AA": "both added",
    "DD": "both deleted",
    "DU": "modify/delete (deleted by us, changed by them)",
    "UD": "modify/delete (changed by us, deleted by them)",
    "AU": "added by us",
    "UA": "added by them",
}


def is_empty_pick(output: str) -> bool:
    """Return True if cherry-pick output says the patch introduced no changes."""
    s = (output or "").lower()
    return "is now empty" in s or "nothing to commit" in s or "nothing added to commit" in s


def _parse_commit(record: str) -> Commit:
    sha, parents, message = record.split(_FS, 2)
    return Commit(sha=sha.strip(), parents=tuple(parents.split()), message=message.strip("\n"))


class Repository:
    """A git working tree, opened once per run and shared by every component."""

    def __init__(self, path: str):
        self.path = os.path.abspath(path)
        if not os.path.exists(os.path.join(self.path, ".git")):
            raise GitError(f"{self.path} is not a git repository")

    def git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        logger.debug("git %s", " ".join(args))
        return run(["git", *args], cwd=self.path, check=check)

    def current_branch(self) -> str:
        """Return the current branch name."""
        result = self.git("branch", "--show-current", check=False)
        if result.returncode != 0 or not result.stdout.strip():
            raise GitError("Could not determine current branch")
        return result.stdout.strip()

    def signature(self) -> str:
        """Return the 'Name <email>' identity git will commit with."""
        name = self.git("config", "user.name", check=False).stdout.strip()
        email = self.git("config", "user.email", check=False).stdout.strip()
        if not name or not email:
            raise GitError("git user.name and user.email must be configured")
        return f"{name} <{email}>"

    def remote_url(self, name: str = "origin") -> str:
        return self.git("remote", "get-url", name).stdout.strip()

    def has_commit(self, sha: str) -> bool:
        result = self.git("rev-parse", "-q", "--verify", f"{sha}^{{commit}}", check=False)
        return result.returncode == 0

    def commit(self, sha: str) -> Commit:
        """Look up a commit by id."""
        if not self.has_commit(sha):
            raise GitError(f"Commit {sha} not found in {self.path}")
        result = self.git("show", "-s", f"--format=%H{_FS}%P{_FS}%B", sha)
        return _parse_commit(result.stdout)

    def message(self, sha: str) -> str | None:
        """Return the full message of a commit, or None if it is not available locally."""
        if not self.has_commit(sha):
            return None
        return self.commit(sha).message

    def history(self, rev: str = "HEAD", exclude: str | None = None) -> Iterator[Commit]:
        """Yield commits reachable from rev, newest first, minus ancestors of exclude."""
        args = ["log", "--topo-order", f"--format=%H{_FS}%P{_FS}%B{_RS}", rev]
        if exclude:
            args.append(f"^{exclude}")
        args.append("--")
        result = self.git(*args)
        for record in result.stdout.split(_RS):
            record = record.strip("\n")
            if record:
                yield _parse_commit(record)

    def tags(self) -> list[Tag]:
        """Return all tags with annotated tags peeled to the commit they point at."""
        result = self.git(
            "for-each-ref",
            "--format=%(refname:short)%1f%(objectname)%1f%(*objectname)",
            "refs/tags",
        )
        tags = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            name, target, peeled = line.split(_FS)
            tags.append(Tag(name=name, target=peeled or target))
        return tags

    def conflicted_entries(self) -> list[tuple[str, str]]:
        """Return list of (path, conflict_type_label) for unmerged paths."""
        result = self.git("status", "--porcelain", "-u", check=False)
        if result.returncode != 0:
            return []
        entries: list[tuple[str, str]] = []
        for line in result.stdout.splitlines():
            if len(line) < 4:
                continue
            code = line[:2]
            rest = line[3:].strip()
            # Handle "old -> new" renames
            path = rest.split(" -> ")[-1].strip() if " -> " in rest else rest
            if code in _CONFLICT_TYPE_LABELS:
                entries.append((path, _CONFLICT_TYPE_LABELS[code]))
        return entries

    def is_cherry_pick_in_progress(self) -> bool:
        """Return True if a cherry-pick is in progress (e.g. while resolving conflicts)."""
        result = self.git("rev-parse", "-q", "--verify", "CHERRY_PICK_HEAD", check=False)
        return result.returncode == 0

    def refresh(self) -> None:
        """Re-read working tree status after changes made outside this process."""
        self.git("update-index", "-q", "--refresh", check=False)

    def cherry_pick(self, sha: str, mainline: int | None = None) -> CherryPickOutcome:
        """Cherry-pick sha onto HEAD and commit it with the original message."""
        cmd = ["cherry-pick"]
        if mainline is not None:
            cmd += ["-m", str(mainline)]
        cmd += [sha, "--no-edit"]
        result = self.git(*cmd, check=False)
        if result.returncode == 0:
            return CherryPickOutcome.APPLIED

        if self.conflicted_entries():
            return CherryPickOutcome.CONFLICT_PENDING_RESOLUTION

        if is_empty_pick(result.stdout + result.stderr):
            if self.is_cherry_pick_in_progress():
                self.git("cherry-pick", "--skip")
            return CherryPickOutcome.APPLIED_EMPTY

        raise GitError(
            f"Command failed: git {' '.join(cmd)}\n{(result.stderr or result.stdout).strip()}"
        )
