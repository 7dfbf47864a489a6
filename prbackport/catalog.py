"""
Merged pull requests and labels, read from and written to GitHub.
"""

import enum
import logging
import re

from github import Auth, Github, GithubException, UnknownObjectException
from github.Label import Label

from prbackport.errors import CatalogUnavailable, ConfigurationError, LabelNotFound, PullRequestNotFound
from prbackport.models import Candidate, PullRequestSummary

logger = logging.getLogger(__name__)


class PullRequestState(enum.Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


def repository_from_remote(url: str) -> str:
    """Parse 'owner/repo' out of an https or ssh GitHub remote URL."""
    # Match: https://github.com/owner/repo(.git) or git@github.com:owner/repo(.git)
    match = re.search(r"github\.com[/:]([^/]+)/([^/]+?)(?:\.git)?/?$", url.strip())
    if not match:
        raise ConfigurationError(f"Not a GitHub remote: {url}; pass --github-repo owner/repo")
    owner, repo = match.groups()
    return f"{owner}/{repo}"


class GithubCatalog:
    """The PR source: one GitHub repository."""

    def __init__(self, token: str | None, repository: str, per_page: int = 100):
        # per_page also bounds label pages; 100 is the API maximum
        self.gh = Github(auth=Auth.Token(token), per_page=per_page) if token else Github(per_page=per_page)
        self.repository = repository
        self._repo = None

    @property
    def repo(self):
        if self._repo is None:
            try:
                self._repo = self.gh.get_repo(self.repository)
            except (GithubException, OSError) as e:
                raise CatalogUnavailable(f"Cannot access {self.repository}: {e}") from e
        return self._repo

    def lookup_label(self, name: str) -> Label:
        try:
            return self.repo.get_label(name)
        except UnknownObjectException as e:
            raise LabelNotFound(name) from e
        except (GithubException, OSError) as e:
            raise CatalogUnavailable(f"Cannot read label '{name}': {e}") from e

    def fetch(self, label: str, states=(PullRequestState.MERGED,)) -> list[Candidate]:
        """
        Return every PR carrying label in one of states, in no particular order.

        Issue label arrays are returned whole by the REST API, so membership
        tests on the labels (wont-backport, backported-*) see every label.
        """
        states = set(states)
        label_obj = self.lookup_label(label)
        issue_state = "all" if PullRequestState.OPEN in states else "closed"
        candidates = []
        try:
            for issue in self.repo.get_issues(state=issue_state, labels=[label_obj]):
                if issue.pull_request is None:
                    continue
                pr = issue.as_pull_request()
                if not self._in_states(pr, states):
                    continue
                candidates.append(
                    Candidate(
                        id=pr.node_id,
                        number=pr.number,
                        title=pr.title,
                        labels=frozenset(lbl.name for lbl in issue.labels),
                        merge_commit=pr.merge_commit_sha,
                        merged_at=pr.merged_at,
                    )
                )
        except (GithubException, OSError) as e:
            raise CatalogUnavailable(f"Cannot list PRs labelled '{label}': {e}") from e
        logger.info("%d PR(s) labelled %s", len(candidates), label)
        return candidates

    @staticmethod
    def _in_states(pr, states: set[PullRequestState]) -> bool:
        if pr.merged_at is not None:
            return PullRequestState.MERGED in states
        if pr.state == "open":
            return PullRequestState.OPEN in states
        return PullRequestState.CLOSED in states

    def lookup(self, number: int) -> PullRequestSummary:
        try:
            pr = self.repo.get_pull(number)
        except UnknownObjectException as e:
            raise PullRequestNotFound(number) from e
        except (GithubException, OSError) as e:
            raise CatalogUnavailable(f"Cannot read PR #{number}: {e}") from e
        return PullRequestSummary(
            number=pr.number,
            title=pr.title,
            author=pr.user.login if pr.user else None,
            url=pr.html_url,
            labels=frozenset(lbl.name for lbl in pr.labels),
            body=pr.body,
        )

    def add_label(self, candidate: Candidate, label: Label) -> None:
        try:
            self.repo.get_issue(candidate.number).add_to_labels(label)
        except (GithubException, OSError) as e:
            raise CatalogUnavailable(f"Cannot add '{label.name}' to #{candidate.number}: {e}") from e

    def remove_label(self, candidate: Candidate, label: Label) -> None:
        try:
            self.repo.get_issue(candidate.number).remove_from_labels(label)
        except UnknownObjectException:
            logger.debug("#%d did not carry %s", candidate.number, label.name)
        except (GithubException, OSError) as e:
            raise CatalogUnavailable(f"Cannot remove '{label.name}' from #{candidate.number}: {e}") from e
