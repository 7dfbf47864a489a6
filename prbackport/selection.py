"""
Pick and order the PRs to backport.
"""

import logging
import re
from collections.abc import Iterable

from prbackport.errors import UnknownPullRequests, ValidationError
from prbackport.models import Candidate

logger = logging.getLogger(__name__)

WONT_BACKPORT = "wont-backport"
BACKPORTED_PREFIX = "backported"


def is_excluded(
    candidate: Candidate,
    backported_label: str | None,
    exclude_labels: Iterable[str] = (WONT_BACKPORT,),
) -> bool:
    """
    True if the candidate must not be backported.

    With a known backported label only that exact label counts; without one
    (legacy mode) any label starting with "backported" does.
    """
    if candidate.labels & set(exclude_labels):
        return True
    if backported_label is not None:
        return backported_label in candidate.labels
    return any(label.startswith(BACKPORTED_PREFIX) for label in candidate.labels)


def select(
    candidates: Iterable[Candidate],
    backported_label: str | None = None,
    exclude_labels: Iterable[str] = (WONT_BACKPORT,),
    after: int | None = None,
) -> list[Candidate]:
    """
    Return the candidates to apply, oldest merge first.

    If `after` is given, only the candidates strictly after that PR number are
    kept; a number that is not in the list yields an empty result.
    """
    exclude_labels = frozenset(exclude_labels)
    kept = []
    for candidate in candidates:
        if is_excluded(candidate, backported_label, exclude_labels):
            continue
        if candidate.merged_at is None:
            logger.warning("Skipping #%d: no merge timestamp", candidate.number)
            continue
        kept.append(candidate)

    ordered = sorted(kept, key=lambda c: c.sort_key)
    if after is None:
        return ordered

    for index, candidate in enumerate(ordered):
        if candidate.number == after:
            return ordered[index + 1:]
    logger.warning("PR #%d is not among the candidates; nothing to resume", after)
    return []


def choose(selected: list[Candidate], numbers: Iterable[int]) -> list[Candidate]:
    """Restrict `selected` to the requested PR numbers, keeping its order."""
    wanted = set(numbers)
    known = {c.number for c in selected}
    missing = sorted(wanted - known)
    if missing:
        raise UnknownPullRequests(missing)
    return [c for c in selected if c.number in wanted]


def parse_numbers(text: str) -> list[int]:
    """Parse user input such as '12, #13 14' into PR numbers."""
    numbers = []
    for token in re.split(r"[\s,]+", text.strip()):
        if not token:
            continue
        value = token.lstrip("#")
        if not value.isdigit():
            raise ValidationError(f"Not a PR number: {token!r}")
        numbers.append(int(value))
    return numbers
