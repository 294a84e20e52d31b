"""Resolve which repository and pull request a command operates on.

Repository precedence (highest first):
  1. Explicit -R workspace/repo flag, used verbatim
  2. Local override (.bbpr.yml) workspace and repository
  3. Active profile workspace, with the repo slug taken from the git remote

A workspace from the flag, the override or the profile always beats the one
derived from the remote. The repo slug comes from the override, else the
remote, else the profile's `repository` option.

The PR id is either explicit or looked up by the current branch name among
the repository's open pull requests. More than one match is an error listing
the candidates; the first one is never picked silently.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bbpr_core.config import DEFAULT_REMOTE
from bbpr_core.errors import (
    AmbiguousPullRequest,
    NoMatchingPullRequest,
    NoRepositoryContext,
    ValidationError,
)
from bbpr_core.models import ActiveContext, RepoCoordinates

if TYPE_CHECKING:
    from bbpr_core.config import Configuration
    from bbpr_core.git import GitContextProbe
    from bbpr_core.service import RepoService

logger = logging.getLogger(__name__)


def parse_repo_override(value: str) -> RepoCoordinates:
    """Validate a -R value: exactly one "/" with both sides non-empty."""
    parts = value.split("/")
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        raise ValidationError(f"Invalid repository '{value}': expected the form workspace/repo")
    return RepoCoordinates(workspace=parts[0].strip(), repo_slug=parts[1].strip())


class ContextResolver:
    """Combines flags, git state and configuration into an ActiveContext.

    Reads configuration but never writes it. ``service`` is only needed when
    the PR id has to be inferred from the current branch.
    """

    def __init__(
        self,
        config: Configuration,
        probe: GitContextProbe,
        service: RepoService | None = None,
        remote: str | None = None,
    ):
        self.config = config
        self.probe = probe
        self.service = service
        self.remote = remote

    def resolve(
        self,
        repo_override: str | None = None,
        pr_id: int | None = None,
        require_pr: bool = True,
    ) -> ActiveContext:
        coords = self.resolve_repository(repo_override)
        if pr_id is not None or not require_pr:
            # An explicit id is used verbatim; RepoService reports it if it does not exist.
            return ActiveContext(coords.workspace, coords.repo_slug, pr_id=pr_id)

        branch = self.probe.current_branch()
        resolved = self.resolve_pr_for_branch(coords, branch)
        return ActiveContext(coords.workspace, coords.repo_slug, pr_id=resolved, branch=branch)

    def resolve_repository(self, repo_override: str | None = None) -> RepoCoordinates:
        if repo_override is not None:
            coords = parse_repo_override(repo_override)
            logger.debug("Repository from -R flag: %s", coords)
            return coords

        local = self.config.local_override
        profile = self.config.active_profile

        workspace = (local.workspace if local else None) or (profile.workspace if profile else None)
        repo_slug = local.repository if local else None

        if workspace and repo_slug:
            logger.debug("Repository from local override %s: %s/%s", local.path, workspace, repo_slug)
            return RepoCoordinates(workspace, repo_slug)

        remote_coords = self.probe.origin_workspace_and_repo(self._remote_name())
        if remote_coords is not None:
            workspace = workspace or remote_coords.workspace
            repo_slug = repo_slug or remote_coords.repo_slug
        if not repo_slug and profile is not None:
            repo_slug = profile.repository

        missing = [label for label, value in (("workspace", workspace), ("repository", repo_slug)) if not value]
        if missing:
            raise NoRepositoryContext(missing)

        logger.debug("Repository resolved: %s/%s (remote=%s)", workspace, repo_slug, remote_coords)
        return RepoCoordinates(workspace, repo_slug)

    def resolve_pr_for_branch(self, coords: RepoCoordinates, branch: str | None) -> int:
        if branch is None:
            raise NoMatchingPullRequest(None)
        if self.service is None:
            raise ValueError("A RepoService is required to infer the pull request from the branch")

        candidates = self.service.list_open_pull_requests(coords.workspace, coords.repo_slug, branch_filter=branch)
        matching = [pr.id for pr in candidates if pr.source_branch == branch]
        logger.debug("Open PRs for branch %r: %s", branch, matching)

        if not matching:
            raise NoMatchingPullRequest(branch)
        if len(matching) > 1:
            raise AmbiguousPullRequest(branch, matching)
        return matching[0]

    def _remote_name(self) -> str:
        local = self.config.local_override
        profile = self.config.active_profile
        return (
            self.remote
            or (local.remote if local else None)
            or (profile.remote if profile else None)
            or DEFAULT_REMOTE
        )
