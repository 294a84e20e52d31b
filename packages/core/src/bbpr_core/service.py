"""Abstract RepoService capability.

The resolver, the diff command and the review session talk to Bitbucket only
through this interface. Every method raises one of AuthError, NotFoundError,
RateLimitError or NetworkError on failure; callers treat them as opaque.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bbpr_core.models import (
        ChangedFile,
        Decision,
        InlineComment,
        PullRequest,
        PullRequestComment,
        PullRequestSummary,
        Repository,
    )


class RepoService(ABC):
    @abstractmethod
    def list_open_pull_requests(
        self, workspace: str, repo_slug: str, branch_filter: str | None = None
    ) -> list[PullRequestSummary]:
        """Open PRs, optionally narrowed to a source branch.

        The filter is a hint for the server; callers must still compare
        source branches exactly.
        """

    @abstractmethod
    def get_pull_request(self, workspace: str, repo_slug: str, pr_id: int) -> PullRequest:
        """Raises NotFoundError if the PR does not exist."""

    @abstractmethod
    def get_diff(self, workspace: str, repo_slug: str, pr_id: int) -> list[ChangedFile]:
        """Changed files of the PR in diff order."""

    @abstractmethod
    def submit_decision(
        self, workspace: str, repo_slug: str, pr_id: int, decision: Decision, body: str | None = None
    ) -> None:
        """Approve, request changes, or post a general comment with ``body`` in one call."""

    @abstractmethod
    def submit_comment(self, workspace: str, repo_slug: str, pr_id: int, comment: InlineComment) -> None:
        """Post one inline comment."""

    # Supplementary queries used by list/view commands. Optional for
    # implementations that only back the review workflow.

    def list_pull_requests(
        self, workspace: str, repo_slug: str, state: str = "OPEN", limit: int | None = None
    ) -> list[PullRequest]:
        raise NotImplementedError

    def list_comments(self, workspace: str, repo_slug: str, pr_id: int) -> list[PullRequestComment]:
        raise NotImplementedError

    def list_repositories(self, workspace: str, limit: int | None = None) -> list[Repository]:
        """Repositories in ``workspace``, most recently updated first."""
        raise NotImplementedError

    def get_current_user(self) -> dict:
        raise NotImplementedError
