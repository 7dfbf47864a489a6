from __future__ import annotations

import pytest

from prbackport.changelog import (
    Changelog,
    ChangelogDiffer,
    LabelPrecedence,
    classify,
    extract_pr_number,
    pr_numbers,
    render,
    section_for,
)
from prbackport.errors import UnsupportedVersionRange, VersionNotFound
from prbackport.git import Repository
from prbackport.models import Commit, PullRequestSummary, Tag, VersionPoint

from conftest import requires_git


def _commit(message: str) -> Commit:
    return Commit(sha="x", parents=("p",), message=message)


def test_extract_merge_form() -> None:
    assert extract_pr_number("Merge pull request #42 from x/y") == 42


def test_extract_squash_form() -> None:
    assert extract_pr_number("Fix thing (#77)") == 77
    assert extract_pr_number("Fix thing (#77)\n\n* squashed commit (#12)") == 77


def test_extract_no_match() -> None:
    assert extract_pr_number("Bump version to 11.2.0") is None
    assert extract_pr_number("Fix thing\n\nsee (#77)") is None
    assert extract_pr_number("Revert (#77) partially") is None


def test_merge_form_wins_over_squash_form() -> None:
    assert extract_pr_number("Merge pull request #5 from x/fix-(#6)") == 5


def test_pr_numbers_deduplicated_and_sorted() -> None:
    commits = [
        _commit("Fix b (#30)"),
        _commit("Merge pull request #10 from a/b"),
        _commit("Fix b (#30)"),
        _commit("Unrelated"),
    ]
    assert pr_numbers(commits) == [10, 30]


class FakeHistoryRepo:
    """Tags plus PR commits reachable from each tag; ranges are tag - exclude."""

    def __init__(self, reachable: dict[str, set[int]]):
        self.reachable = reachable

    def tags(self) -> list[Tag]:
        return [Tag(name, f"sha-{name}") for name in self.reachable] + [Tag("nightly", "sha-nightly")]

    def history(self, rev: str, exclude: str | None = None):
        numbers = self.reachable[rev[len("sha-"):]]
        if exclude:
            numbers = numbers - self.reachable[exclude[len("sha-"):]]
        return [_commit(f"Change (#{n})") for n in sorted(numbers)]


def test_same_minor_diff_is_tag_range() -> None:
    repo = FakeHistoryRepo({"11.2.0": {1, 2}, "11.2.1": {1, 2, 3, 4}})
    diff = ChangelogDiffer(repo).diff(VersionPoint(11, 2, 1), VersionPoint(11, 2, 0))
    assert diff.new == [3, 4]
    assert diff.missing == []


def test_diff_of_version_with_itself_is_empty() -> None:
    repo = FakeHistoryRepo({"11.2.0": {1, 2}})
    diff = ChangelogDiffer(repo).diff(VersionPoint(11, 2, 0), VersionPoint(11, 2, 0))
    assert diff.new == []
    assert diff.missing == []


def test_cross_minor_diff_subtracts_previous_line() -> None:
    # A=1, B=2, C=3 on the new line; A and B were also backported to 11.1
    repo = FakeHistoryRepo({"11.0.0": {100}, "11.1.4": {100, 1, 2}, "11.2.0": {100, 1, 2, 3}})
    diff = ChangelogDiffer(repo).diff(VersionPoint(11, 2, 0), VersionPoint(11, 1, 4))
    assert diff.new == [3]
    assert diff.missing == []


def test_cross_minor_diff_reports_missing_forward_ports() -> None:
    repo = FakeHistoryRepo({"11.0.0": {100}, "11.1.4": {100, 1, 2, 4}, "11.2.0": {100, 1, 2, 3}})
    diff = ChangelogDiffer(repo).diff(VersionPoint(11, 2, 0), VersionPoint(11, 1, 4))
    assert diff.new == [3]
    assert diff.missing == [4]


def test_ancestor_is_earliest_tag_of_major() -> None:
    repo = FakeHistoryRepo({"11.0.0": set(), "11.0.1": set(), "v11.1.0-rc1": set(), "11.1.0": set()})
    differ = ChangelogDiffer(repo)
    assert differ.resolve(VersionPoint(11)).name == "11.0.0"
    assert differ.resolve(VersionPoint(11, 1, 0)).name == "11.1.0"


def test_mixed_major_rejected() -> None:
    repo = FakeHistoryRepo({"10.9.0": set(), "11.0.0": set()})
    with pytest.raises(UnsupportedVersionRange):
        ChangelogDiffer(repo).diff(VersionPoint(11, 0, 0), VersionPoint(10, 9, 0))


def test_unknown_version_raises() -> None:
    repo = FakeHistoryRepo({"11.2.0": set()})
    with pytest.raises(VersionNotFound):
        ChangelogDiffer(repo).diff(VersionPoint(11, 2, 1), VersionPoint(11, 2, 0))


def _summary(number: int, *labels: str, body: str | None = None) -> PullRequestSummary:
    return PullRequestSummary(
        number=number,
        title=f"PR {number}",
        author="dev",
        url=f"https://github.com/o/r/pull/{number}",
        labels=frozenset(labels),
        body=body,
    )


def test_section_precedence_is_explicit_policy() -> None:
    assert section_for({"bug", "feature"}) == "features"
    assert section_for({"bug", "feature"}, LabelPrecedence.FIXES_FIRST) == "fixes"
    assert section_for({"enhancement"}, LabelPrecedence.FIXES_FIRST) == "features"
    assert section_for({"bug"}) == "fixes"
    assert section_for({"docs"}) == "misc"


def test_classify_buckets_and_skips_failed_lookups(fake_catalog_factory) -> None:
    catalog = fake_catalog_factory(
        {
            1: _summary(1, "enhancement"),
            2: _summary(2, "bug"),
            3: _summary(3),
            4: _summary(4, "bug", "feature"),
        }
    )
    changelog = classify([1, 2, 3, 4, 5], catalog.lookup)
    assert [p.number for p in changelog.features] == [1, 4]
    assert [p.number for p in changelog.fixes] == [2]
    assert [p.number for p in changelog.misc] == [3]
    assert changelog.failed == [5]


def test_render_uses_changelog_entry_and_reports_missing() -> None:
    body = (
        "### Changelog entry (a user-readable short description of the changes that goes to CHANGELOG.md):\n"
        "\n"
        "Faster startup\n"
        "### Details\n"
    )
    changelog = Changelog(features=[_summary(1, "feature", body=body)], misc=[_summary(3)], failed=[9])
    text = render(changelog, missing=[4])

    assert "## Features\n" in text
    assert "- Faster startup (https://github.com/o/r/pull/1 by @dev)" in text
    assert "- PR 3 (https://github.com/o/r/pull/3 by @dev)" in text
    assert "## Fixes" not in text
    assert "## Missing forward-ports" in text
    assert "- #4" in text
    assert "## Not found" in text


@requires_git
def test_diff_against_real_tags(git_repo) -> None:
    git_repo.git("tag", "-a", "11.0.0", "-m", "11.0.0")
    git_repo.merge_pr(1, "a.txt", "a\n")
    git_repo.commit_file("b.txt", "b\n", "Squashed change (#2)")
    git_repo.git("tag", "11.0.1")

    differ = ChangelogDiffer(Repository(str(git_repo.path)))
    diff = differ.diff(VersionPoint(11, 0, 1), VersionPoint(11, 0, 0))
    assert diff.new == [1, 2]


def test_exact_tag_name_wins_over_version_match() -> None:
    repo = FakeHistoryRepo({"11.2.0-beta": {1}, "11.2.0-rc1": {1, 2}, "11.2.0": {1, 2, 3}})
    differ = ChangelogDiffer(repo)
    rc = VersionPoint.parse("11.2.0-rc1")
    beta = VersionPoint.parse("11.2.0-beta")
    assert differ.resolve(rc, "11.2.0-rc1").name == "11.2.0-rc1"
    assert differ.resolve(rc).name == "11.2.0"
    assert differ.resolve(rc, "11.2.0-rc9").name == "11.2.0"

    assert differ.diff(rc, beta, "11.2.0-rc1", "11.2.0-beta").new == [2]
    assert differ.diff(rc, beta).new == []
