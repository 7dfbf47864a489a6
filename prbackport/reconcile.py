"""
Work out which candidates already landed on the current branch, and relabel them.

Matching is by commit message: a candidate counts as backported when some
commit on the branch starts with the first line of the PR's merge commit, or
with "Merge pull request #N". Edited messages give false negatives and
identical titles give false positives; both are reported, not fixed.
"""

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from prbackport.errors import CatalogError, ConfigurationError
from prbackport.models import Candidate, Commit, LabelPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciliationAmbiguous:
    number: int
    reason: str


@dataclass
class ReconcileReport:
    backported: list[Candidate] = field(default_factory=list)
    pending: list[Candidate] = field(default_factory=list)
    notes: list[ReconciliationAmbiguous] = field(default_factory=list)


def _matcher(candidate: Candidate, merge_message: str | None) -> Callable[[str], bool]:
    # "#12" must not match "Merge pull request #123"
    merge_form = re.compile(rf"Merge pull request #{candidate.number}(?!\d)")
    first_line = merge_message.split("\n", 1)[0].strip() if merge_message else ""

    def matches(message: str) -> bool:
        if first_line and message.startswith(first_line):
            return True
        return merge_form.match(message) is not None

    return matches


def reconcile(
    candidates: Iterable[Candidate],
    history: Iterable[Commit],
    message_of: Callable[[str], str | None],
) -> ReconcileReport:
    """
    Partition candidates into already-backported and not-yet-backported.

    `message_of` returns the message of a PR's upstream merge commit, or None
    if that commit is not available locally.
    """
    history = list(history)
    report = ReconcileReport()
    ordered = sorted(
        candidates, key=lambda c: (c.merged_at is None, c.merged_at or 0, c.number)
    )
    for candidate in ordered:
        merge_message = message_of(candidate.merge_commit)
        if merge_message is None:
            report.notes.append(
                ReconciliationAmbiguous(
                    candidate.number, f"merge commit {candidate.merge_commit} not available locally"
                )
            )
        is_match = _matcher(candidate, merge_message)
        matches = [commit for commit in history if is_match(commit.message)]
        if not matches:
            report.pending.append(candidate)
            continue
        if len(matches) > 1:
            report.notes.append(
                ReconciliationAmbiguous(
                    candidate.number,
                    f"{len(matches)} commits match: {', '.join(c.sha[:10] for c in matches)}",
                )
            )
        logger.debug("#%d found as %s", candidate.number, matches[0].sha)
        report.backported.append(candidate)
    return report


def relabel(candidates: Iterable[Candidate], catalog, labels: LabelPair) -> None:
    """Swap the candidate label for the backported label on each PR."""
    if labels.backported is None:
        raise ConfigurationError("A backported label is required to relabel PRs")
    backported = catalog.lookup_label(labels.backported)
    candidate_label = catalog.lookup_label(labels.candidate)
    for candidate in candidates:
        logger.info("Labelling #%d %s as %s", candidate.number, candidate.title, labels.backported)
        try:
            catalog.add_label(candidate, backported)
        except CatalogError as e:
            logger.error("Could not add %s to #%d: %s", labels.backported, candidate.number, e)
            raise
        finally:
            catalog.remove_label(candidate, candidate_label)
