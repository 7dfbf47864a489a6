"""Exceptions raised by prbackport."""


class BackportError(Exception):
    """Base class for every error the command line reports with exit code 1."""


class ConfigurationError(BackportError):
    pass


class NotAReleaseBranch(ConfigurationError):
    def __init__(self, branch: str):
        super().__init__(
            f"Branch '{branch}' is not a release branch (release/MAJOR.MINOR); "
            "pass --candidates/--backported to choose labels explicitly"
        )
        self.branch = branch


class UnsupportedVersionRange(ConfigurationError):
    pass


class ValidationError(ConfigurationError):
    pass


class UnknownPullRequests(ValidationError):
    def __init__(self, missing: list[int]):
        numbers = ", ".join(f"#{n}" for n in missing)
        super().__init__(f"Not in the candidate list: {numbers}")
        self.missing = missing


class CatalogError(BackportError):
    pass


class CatalogUnavailable(CatalogError):
    pass


class LabelNotFound(CatalogError):
    def __init__(self, name: str):
        super().__init__(f"Label '{name}' does not exist")
        self.name = name


class PullRequestNotFound(CatalogError):
    def __init__(self, number: int):
        super().__init__(f"PR #{number} not found")
        self.number = number


class VersionNotFound(BackportError):
    pass


class GitError(BackportError):
    pass


class UserCancelled(BackportError):
    """Deliberate abort by the user; maps to exit code 2."""
