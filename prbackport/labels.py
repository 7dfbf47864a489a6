"""
Derive the candidate/backported label names for a release branch.
"""

import logging
import re

from prbackport.errors import NotAReleaseBranch
from prbackport.models import LabelPair

logger = logging.getLogger(__name__)

_RELEASE_BRANCH = re.compile(r"^release/(\d+)\.(\d+)$")


def parse_release_branch(branch: str) -> tuple[int, int] | None:
    """Return (major, minor) for 'release/MAJOR.MINOR', else None."""
    match = _RELEASE_BRANCH.match(branch)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def resolve_labels(
    branch: str,
    candidate_override: str | None = None,
    backported_override: str | None = None,
) -> LabelPair:
    """
    Compute the label pair used for every query in this run.

    Overrides win over the names derived from the branch. Off a release branch
    a candidate override alone selects legacy mode (backported label unknown).
    """
    version = parse_release_branch(branch)
    if version is None:
        if not candidate_override:
            raise NotAReleaseBranch(branch)
        labels = LabelPair(candidate_override, backported_override or None)
    else:
        major, minor = version
        labels = LabelPair(
            candidate_override or f"backport-candidate-{major}.{minor}.x",
            backported_override or f"backported-{major}.{minor}.x",
        )
    logger.info(
        "Using labels: candidate=%s backported=%s",
        labels.candidate,
        labels.backported or "(any 'backported*' label)",
    )
    return labels
