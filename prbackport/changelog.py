"""
Release notes: find the PRs between two release points and sort them into sections.

Within one minor line the PRs are those merged between the two tags. Across
minors (e.g. 11.1.4 -> 11.2.0) the two lines diverged, so each side is
collected back to the first release of the shared major and the sets are
subtracted; PRs only on the older line are reported as missing forward-ports.
"""

import enum
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from prbackport.changelog_extract import changelog_entry, format_entry
from prbackport.errors import CatalogError, UnsupportedVersionRange, VersionNotFound
from prbackport.git import Repository
from prbackport.models import Commit, PullRequestSummary, Tag, VersionPoint

logger = logging.getLogger(__name__)

_MERGE_PATTERN = re.compile(r"^Merge pull request #(\d+) from ")
# Squash merges: "Fix thing (#77)" on the first line
_SQUASH_PATTERN = re.compile(r"\(#(\d+)\)\s*$")

FEATURE_LABELS = frozenset({"enhancement", "feature"})
FIX_LABELS = frozenset({"bug"})


def extract_pr_number(message: str) -> int | None:
    """Return the PR number a merge or squash commit message refers to."""
    match = _MERGE_PATTERN.match(message)
    if match:
        return int(match.group(1))
    first_line = message.split("\n", 1)[0].strip()
    match = _SQUASH_PATTERN.search(first_line)
    if match:
        return int(match.group(1))
    return None


def pr_numbers(commits: Iterable[Commit]) -> list[int]:
    """Return the distinct PR numbers referenced by commits, ascending."""
    numbers = set()
    for commit in commits:
        number = extract_pr_number(commit.message)
        if number is not None:
            numbers.add(number)
    return sorted(numbers)


@dataclass(frozen=True)
class ChangelogDiff:
    new: list[int]
    # Backported to the previous line but never merged into the current one
    missing: list[int] = field(default_factory=list)


class ChangelogDiffer:
    def __init__(self, repo: Repository):
        self.repo = repo
        self._tags: list[Tag] | None = None

    def tags(self) -> list[Tag]:
        if self._tags is None:
            self._tags = [t for t in self.repo.tags() if t.version is not None]
        return self._tags

    def resolve(self, version: VersionPoint, name: str | None = None) -> Tag:
        """
        Return the tag called name if there is one, else the earliest tag
        matching version (unset fields match anything).
        """
        if name is not None:
            for tag in self.tags():
                if tag.name == name:
                    return tag
        matching = [t for t in self.tags() if version.matches(t.version)]
        if not matching:
            raise VersionNotFound(f"No tag found for version {version}")
        return min(matching, key=lambda t: (t.version, t.name))

    def _range(self, current: Tag, previous: Tag) -> list[int]:
        logger.debug("Collecting PRs in %s..%s", previous.name, current.name)
        return pr_numbers(self.repo.history(current.target, exclude=previous.target))

    def diff(
        self,
        current: VersionPoint,
        previous: VersionPoint,
        current_name: str | None = None,
        previous_name: str | None = None,
    ) -> ChangelogDiff:
        """PRs in current but not previous; tag names, when given, win over version matching."""
        if current.major != previous.major:
            raise UnsupportedVersionRange(
                f"Cannot diff across major versions ({previous} -> {current})"
            )
        current_tag = self.resolve(current, current_name)
        previous_tag = self.resolve(previous, previous_name)

        if current.minor == previous.minor:
            return ChangelogDiff(new=self._range(current_tag, previous_tag))

        ancestor_tag = self.resolve(current.common_ancestor(previous))
        logger.info(
            "%s and %s are on different branches; comparing both against %s",
            current_tag.name, previous_tag.name, ancestor_tag.name,
        )
        current_set = set(self._range(current_tag, ancestor_tag))
        previous_set = set(self._range(previous_tag, ancestor_tag))
        missing = sorted(previous_set - current_set)
        if missing:
            logger.warning(
                "%d PR(s) in %s are not in %s", len(missing), previous_tag.name, current_tag.name
            )
        return ChangelogDiff(new=sorted(current_set - previous_set), missing=missing)


class LabelPrecedence(enum.Enum):
    """Which section wins for a PR labelled both as a feature and as a bug."""

    FEATURES_FIRST = "features"
    FIXES_FIRST = "fixes"


def section_for(labels: Iterable[str], precedence: LabelPrecedence = LabelPrecedence.FEATURES_FIRST) -> str:
    labels = set(labels)
    checks = [("features", FEATURE_LABELS), ("fixes", FIX_LABELS)]
    if precedence is LabelPrecedence.FIXES_FIRST:
        checks.reverse()
    for section, wanted in checks:
        if labels & wanted:
            return section
    return "misc"


@dataclass
class Changelog:
    features: list[PullRequestSummary] = field(default_factory=list)
    fixes: list[PullRequestSummary] = field(default_factory=list)
    misc: list[PullRequestSummary] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)


def classify(
    numbers: Iterable[int],
    lookup: Callable[[int], PullRequestSummary],
    precedence: LabelPrecedence = LabelPrecedence.FEATURES_FIRST,
) -> Changelog:
    """Look up each PR in turn and file it under exactly one section."""
    changelog = Changelog()
    for number in numbers:
        try:
            pr = lookup(number)
        except CatalogError as e:
            logger.error("Could not look up PR #%d: %s", number, e)
            changelog.failed.append(number)
            continue
        getattr(changelog, section_for(pr.labels, precedence)).append(pr)
    return changelog


def _entry(pr: PullRequestSummary) -> str:
    text = changelog_entry(pr.body) or pr.title
    return "- " + format_entry(text, url=pr.url, author=pr.author)


def render(changelog: Changelog, missing: Iterable[int] = ()) -> str:
    """Render the changelog as Markdown."""
    sections = [
        ("Features", changelog.features),
        ("Fixes", changelog.fixes),
        ("Miscellaneous", changelog.misc),
    ]
    out = []
    for title, prs in sections:
        if prs:
            out.append(f"## {title}\n")
            out.extend(_entry(pr) for pr in prs)
            out.append("")

    missing = list(missing)
    if missing:
        out.append("## Missing forward-ports\n")
        out.append("Merged into the previous release line but not into this one:\n")
        out.extend(f"- #{n}" for n in missing)
        out.append("")
    if changelog.failed:
        out.append("## Not found\n")
        out.extend(f"- #{n}" for n in changelog.failed)
        out.append("")
    return "\n".join(out)
