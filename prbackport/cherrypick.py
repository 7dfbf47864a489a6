"""
Apply the merge commits of selected PRs to the current branch, one at a time.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from prbackport.git import Repository
from prbackport.models import Candidate, CherryPickOutcome

logger = logging.getLogger(__name__)

# Called with the conflicted candidate and its (path, kind) entries once the
# engine has suspended; returns True when the user has committed a resolution
# and wants to continue, False to abort the remaining sequence.
ConflictResolver = Callable[[Candidate, list[tuple[str, str]]], bool]


@dataclass
class CherryPickReport:
    """Final outcome per candidate, in application order; conflicts end as RESOLVED or ABORTED."""

    outcomes: list[tuple[Candidate, CherryPickOutcome]] = field(default_factory=list)
    cancelled: bool = False

    def numbers(self, outcome: CherryPickOutcome) -> list[int]:
        return [c.number for c, o in self.outcomes if o is outcome]


class CherryPickEngine:
    def __init__(self, repo: Repository, resolve_conflict: ConflictResolver):
        self.repo = repo
        self.resolve_conflict = resolve_conflict

    def apply(self, candidate: Candidate) -> CherryPickOutcome:
        """Replay one candidate's merge commit onto the branch tip."""
        commit = self.repo.commit(candidate.merge_commit)
        # Replay against the branch the PR was merged into, not the feature branch
        mainline = 1 if commit.is_merge else None
        outcome = self.repo.cherry_pick(commit.sha, mainline=mainline)
        if outcome is CherryPickOutcome.APPLIED_EMPTY:
            logger.info("#%d %s: nothing to apply, skipped", candidate.number, candidate.title)
        return outcome

    def _wait_for_resolution(self, candidate: Candidate) -> bool:
        while True:
            if not self.resolve_conflict(candidate, self.repo.conflicted_entries()):
                return False
            # The fix was made outside this process; drop any stale status first.
            self.repo.refresh()
            if not self.repo.is_cherry_pick_in_progress():
                return True
            logger.warning("#%d: cherry-pick is still in progress", candidate.number)

    def run(self, candidates: Iterable[Candidate]) -> CherryPickReport:
        """Apply candidates strictly in the given order, stopping on user abort."""
        report = CherryPickReport()
        for candidate in candidates:
            logger.info(
                "Merging #%d %s - %s", candidate.number, candidate.title, candidate.merge_commit
            )
            outcome = self.apply(candidate)
            if outcome is CherryPickOutcome.CONFLICT_PENDING_RESOLUTION:
                if not self._wait_for_resolution(candidate):
                    report.outcomes.append((candidate, CherryPickOutcome.ABORTED))
                    report.cancelled = True
                    return report
                outcome = CherryPickOutcome.RESOLVED
            report.outcomes.append((candidate, outcome))
        return report
