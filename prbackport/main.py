"""
Backport merged GitHub PRs onto a release branch and write release notes.

Usage:
    prbackport cherrypick [--after 1234] [-i]
    prbackport label
    prbackport changelog --tag 11.2.0 --previous-tag 11.1.4

cherrypick replays the merge commit of every PR labelled
backport-candidate-MAJOR.MINOR.x onto the current release/MAJOR.MINOR branch,
oldest first, stopping for manual conflict resolution. label marks the
candidates already on the branch as backported. changelog lists the PRs that
went into a release, grouped by label.
"""

import argparse
import logging
import os
import sys

from prbackport.catalog import GithubCatalog, repository_from_remote
from prbackport.changelog import ChangelogDiffer, LabelPrecedence, classify, render
from prbackport.cherrypick import CherryPickEngine
from prbackport.errors import BackportError, ConfigurationError, UserCancelled, ValidationError
from prbackport.git import Repository
from prbackport.labels import resolve_labels
from prbackport.models import Candidate, CherryPickOutcome, VersionPoint
from prbackport.reconcile import reconcile, relabel
from prbackport.selection import choose, parse_numbers, select


def setup_logging(log_level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s", "%Y-%m-%dT%H:%M:%S"))
    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def prompt_yes_no(question: str) -> bool:
    """Prompt with question; only an explicit yes continues."""
    try:
        answer = input(question + " ").strip().lower()
    except EOFError:
        answer = ""
    return answer in ("y", "yes")


def resolve_conflict(candidate: Candidate, conflicts: list[tuple[str, str]]) -> bool:
    print(f"\nCONFLICT while merging #{candidate.number} {candidate.title}", file=sys.stderr)
    for path, kind in conflicts:
        print(f"  {path}  ({kind})", file=sys.stderr)
    print("Resolve the conflicts and commit (git add <paths> && git cherry-pick --continue).", file=sys.stderr)
    return prompt_yes_no("Press Y to continue, any other key to abort.")


def prompt_subset(selected: list[Candidate]) -> list[Candidate]:
    """Ask which of the listed PRs to apply; blank input keeps them all."""
    while True:
        try:
            answer = input("PR numbers to apply (blank for all): ")
        except EOFError:
            answer = ""
        if not answer.strip():
            return selected
        try:
            return choose(selected, parse_numbers(answer))
        except ValidationError as e:
            print(f"Error: {e}", file=sys.stderr)


def print_candidates(candidates: list[Candidate]) -> None:
    for pr in candidates:
        print(f"#{pr.number} {pr.title}")


def open_catalog(args: argparse.Namespace, repo: Repository) -> GithubCatalog:
    if not args.token:
        raise ConfigurationError("token not supplied (--token or GITHUB_TOKEN)")
    github_repo = args.github_repo or repository_from_remote(repo.remote_url())
    return GithubCatalog(args.token, github_repo)


def parse_version(text: str, option: str) -> VersionPoint:
    version = VersionPoint.parse(text)
    if version is None:
        raise ConfigurationError(f"{option}: '{text}' is not a version")
    return version


def cmd_cherrypick(args: argparse.Namespace, repo: Repository) -> int:
    branch = repo.current_branch()
    labels = resolve_labels(branch, args.candidates, args.backported)
    signature = repo.signature()
    catalog = open_catalog(args, repo)

    print("Reading pull requests...")
    to_merge = select(catalog.fetch(labels.candidate), labels.backported, after=args.after)
    print(f"{len(to_merge)} PRs to backport:\n")
    print_candidates(to_merge)
    if not to_merge:
        return 0
    if args.interactive:
        to_merge = prompt_subset(to_merge)

    print(f"\n{len(to_merge)} PRs will be merged into branch '{branch}' of '{repo.path}'")
    print(f"Signature: {signature}.")
    if not prompt_yes_no("Press Y to continue, any other key to abort."):
        raise UserCancelled()

    report = CherryPickEngine(repo, resolve_conflict).run(to_merge)
    if report.cancelled:
        raise UserCancelled()
    empty = report.numbers(CherryPickOutcome.APPLIED_EMPTY)
    print(f"\nDone! {len(report.outcomes)} PRs processed on '{branch}'.")
    if empty:
        print("Nothing to apply for: " + ", ".join(f"#{n}" for n in empty))
    return 0


def cmd_label(args: argparse.Namespace, repo: Repository) -> int:
    branch = repo.current_branch()
    labels = resolve_labels(branch, args.candidates, args.backported)
    if labels.backported is None:
        raise ConfigurationError("label needs --backported outside a release branch")
    catalog = open_catalog(args, repo)

    print("Reading pull requests...")
    candidates = select(catalog.fetch(labels.candidate), labels.backported)
    report = reconcile(candidates, repo.history("HEAD"), repo.message)

    print(f"\n{len(report.backported)} PRs already on '{branch}':")
    print_candidates(report.backported)
    print(f"\n{len(report.pending)} PRs not yet backported:")
    print_candidates(report.pending)
    for note in report.notes:
        print(f"warning: #{note.number}: {note.reason}", file=sys.stderr)

    if not report.backported:
        return 0
    print(f"\n{len(report.backported)} PRs will be labelled '{labels.backported}'.")
    if not prompt_yes_no("Press Y to continue, any other key to abort."):
        raise UserCancelled()
    relabel(report.backported, catalog, labels)
    return 0


def cmd_changelog(args: argparse.Namespace, repo: Repository) -> int:
    current = parse_version(args.tag, "--tag")
    previous = parse_version(args.previous_tag, "--previous-tag")
    diff = ChangelogDiffer(repo).diff(current, previous, args.tag, args.previous_tag)
    catalog = open_catalog(args, repo)
    precedence = LabelPrecedence.FIXES_FIRST if args.fixes_first else LabelPrecedence.FEATURES_FIRST
    changelog = classify(diff.new, catalog.lookup, precedence)
    print(render(changelog, diff.missing))
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--token",
        default=os.environ.get("GITHUB_TOKEN"),
        help="GitHub token for API access (default: GITHUB_TOKEN env var)",
    )
    common.add_argument(
        "--repository",
        default=os.getcwd(),
        help="Path to the git repository (default: current directory)",
    )
    common.add_argument(
        "--github-repo",
        dest="github_repo",
        help="GitHub repository as owner/repo (default: taken from the origin remote)",
    )
    common.add_argument("--log-level", dest="log_level", default="info", help="Logging level (default: info)")

    labels = argparse.ArgumentParser(add_help=False)
    labels.add_argument("--candidates", help="Label of PRs to backport (default: backport-candidate-M.m.x)")
    labels.add_argument("--backported", help="Label of PRs already backported (default: backported-M.m.x)")

    parser = argparse.ArgumentParser(
        prog="prbackport",
        description="Backport merged GitHub PRs to a release branch.",
        epilog="Example: prbackport cherrypick --after 1234",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    cherrypick = sub.add_parser(
        "cherrypick", aliases=["cherry-pick"], parents=[common, labels],
        help="Cherry-pick candidate PRs onto the current branch",
    )
    cherrypick.add_argument("--after", type=int, help="Skip until after this PR number")
    cherrypick.add_argument(
        "-i", "--interactive", action="store_true",
        help="Choose which of the listed PRs to apply",
    )
    cherrypick.set_defaults(handler=cmd_cherrypick)

    label = sub.add_parser(
        "label", parents=[common, labels],
        help="Label candidates already on the current branch as backported",
    )
    label.set_defaults(handler=cmd_label)

    changelog = sub.add_parser(
        "changelog", parents=[common],
        help="Print release notes for the PRs between two releases",
    )
    changelog.add_argument("--tag", required=True, help="Release to describe (e.g. 11.2.0)")
    changelog.add_argument("--previous-tag", dest="previous_tag", required=True, help="Previous release")
    changelog.add_argument(
        "--fixes-first", dest="fixes_first", action="store_true",
        help="File PRs labelled both 'bug' and 'feature' under Fixes",
    )
    changelog.set_defaults(handler=cmd_changelog)
    return parser


def run_command(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        repo = Repository(args.repository)
        return args.handler(args, repo)
    except UserCancelled:
        print("\nUser canceled.", file=sys.stderr)
        return 2
    except BackportError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main() -> None:
    sys.exit(run_command())
