"""Error taxonomy shared by every bbpr command.

Each error carries the process exit code the CLI uses when it reaches the
top level. Library code raises these; only bbpr_cli turns them into output.
"""

from __future__ import annotations


class BbprError(Exception):
    """Base class for all expected, user-facing failures."""

    exit_code: int = 1


class ValidationError(BbprError):
    """Malformed flag, key or argument combination. Never retried."""

    exit_code = 2


class ConfigError(BbprError):
    """A configuration file exists but cannot be read or written."""

    exit_code = 5


# ---------------------------------------------------------------------------
# Context resolution
# ---------------------------------------------------------------------------


class ContextError(BbprError):
    exit_code = 3


class NoRepositoryContext(ContextError):
    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(
            f"Could not determine the {' and '.join(missing)}. "
            "Pass -R workspace/repo, run `bbpr config init` in this project, "
            "or set a workspace with `bbpr config set workspace <name>`."
        )


class NoMatchingPullRequest(ContextError):
    def __init__(self, branch: str | None):
        self.branch = branch
        if branch is None:
            message = "Not on a git branch, so no pull request could be inferred. Pass a PR id explicitly."
        else:
            message = f"No open pull request found for branch '{branch}'. Pass a PR id explicitly."
        super().__init__(message)


class AmbiguousPullRequest(ContextError):
    def __init__(self, branch: str, candidates: list[int]):
        self.branch = branch
        self.candidates = candidates
        ids = ", ".join(f"#{c}" for c in candidates)
        super().__init__(
            f"Branch '{branch}' has {len(candidates)} open pull requests ({ids}). Re-run with one of these ids."
        )


# ---------------------------------------------------------------------------
# RepoService failures, propagated opaquely by the core
# ---------------------------------------------------------------------------


class RepoServiceError(BbprError):
    exit_code = 4


class AuthError(RepoServiceError):
    pass


class NotFoundError(RepoServiceError):
    pass


class RateLimitError(RepoServiceError):
    def __init__(self, message: str, retry_after: int | None = None):
        self.retry_after = retry_after
        if retry_after is not None:
            message = f"{message} (retry after {retry_after}s)"
        super().__init__(message)


class NetworkError(RepoServiceError):
    pass
