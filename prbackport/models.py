"""
Value objects shared by the selection, cherry-pick, reconcile and changelog code.
"""

import enum
import re
from dataclasses import dataclass
from datetime import datetime
from functools import total_ordering

# release/11.2, 11.2, v11.2.3, 11.2.3-rc1
_VERSION_PATTERN = re.compile(r"^(?:release/)?v?(\d+)\.(\d+)(?:\.(\d+))?(?:[-+].*)?$")


@dataclass(frozen=True)
class Candidate:
    """A merged PR eligible for backport consideration."""

    id: str
    number: int
    title: str
    labels: frozenset[str]
    merge_commit: str
    merged_at: datetime | None

    @property
    def sort_key(self) -> tuple[datetime | None, int]:
        return self.merged_at, self.number


@dataclass(frozen=True)
class LabelPair:
    candidate: str
    # None only in legacy auto-detect mode (any "backported*" label counts)
    backported: str | None


@total_ordering
@dataclass(frozen=True)
class VersionPoint:
    """A (major, minor, patch) release point; None fields act as wildcards."""

    major: int
    minor: int | None = None
    patch: int | None = None

    def __str__(self) -> str:
        parts = [self.major, self.minor, self.patch]
        return ".".join(str(p) for p in parts if p is not None)

    @property
    def version_tuple(self) -> tuple[int, int, int]:
        return self.major, self.minor or 0, self.patch or 0

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, VersionPoint):
            return NotImplemented
        return self.version_tuple < other.version_tuple

    @classmethod
    def parse(cls, text: str) -> "VersionPoint | None":
        """Parse a branch name or tag; return None if it is not a version."""
        match = _VERSION_PATTERN.match(text.strip())
        if not match:
            return None
        major, minor, patch = match.groups()
        return cls(int(major), int(minor), int(patch) if patch is not None else None)

    def matches(self, other: "VersionPoint") -> bool:
        """True if other agrees with every field set on self."""
        if self.major != other.major:
            return False
        if self.minor is not None and self.minor != other.minor:
            return False
        if self.patch is not None and self.patch != other.patch:
            return False
        return True

    def common_ancestor(self, other: "VersionPoint") -> "VersionPoint | None":
        if self.major != other.major:
            return None
        return VersionPoint(self.major)


class CherryPickOutcome(enum.Enum):
    APPLIED = "applied"
    APPLIED_EMPTY = "applied-empty"
    CONFLICT_PENDING_RESOLUTION = "conflict"
    RESOLVED = "resolved"
    ABORTED = "aborted"


@dataclass(frozen=True)
class PullRequestSummary:
    number: int
    title: str
    author: str | None
    url: str
    labels: frozenset[str] = frozenset()
    body: str | None = None


@dataclass(frozen=True)
class Commit:
    sha: str
    parents: tuple[str, ...] = ()
    message: str = ""

    @property
    def first_line(self) -> str:
        return self.message.split("\n", 1)[0].strip()

    @property
    def is_merge(self) -> bool:
        return len(self.parents) > 1


@dataclass(frozen=True)
class Tag:
    name: str
    target: str

    @property
    def version(self) -> VersionPoint | None:
        return VersionPoint.parse(self.name)
