"""Read-only view of the local git checkout.

Only three facts are ever needed: the current branch, the repository root and
the URL of one remote. Not being in a git repository, having no such remote,
or git not being installed are all normal outcomes and yield None.
"""

from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from bbpr_core.models import RepoCoordinates

logger = logging.getLogger(__name__)

_GIT_TIMEOUT = 5

# git@bitbucket.org:ws/repo.git
_SCP_RE = re.compile(r"^[\w.-]+@bitbucket\.org:(?P<path>.+)$")
# https://bitbucket.org/ws/repo.git, https://user@bitbucket.org/ws/repo.git, ssh://git@bitbucket.org/ws/repo.git
_URL_RE = re.compile(r"^(?:https?|ssh|git)://(?:[^@/]+@)?bitbucket\.org(?::\d+)?/(?P<path>.+)$")


def parse_remote_url(url: str) -> RepoCoordinates | None:
    """Extract workspace and repo slug from a Bitbucket remote URL.

    Returns None for URLs that do not point at bitbucket.org or do not have
    exactly a workspace and a repository component.
    """
    url = url.strip()
    match = _SCP_RE.match(url) or _URL_RE.match(url)
    if not match:
        return None
    path = match.group("path").rstrip("/").removesuffix(".git")
    parts = path.split("/")
    if len(parts) != 2 or not all(parts):
        return None
    return RepoCoordinates(workspace=parts[0], repo_slug=parts[1])


class GitContextProbe:
    """Runs git in ``cwd`` (default: the process working directory)."""

    def __init__(self, cwd: str | Path | None = None, remote: str = "origin"):
        self.cwd = str(cwd) if cwd is not None else None
        self.remote = remote

    def current_branch(self) -> str | None:
        branch = self._git("rev-parse", "--abbrev-ref", "HEAD")
        # A detached HEAD reports the literal "HEAD".
        if not branch or branch == "HEAD":
            return None
        return branch

    def repo_root(self) -> Path | None:
        root = self._git("rev-parse", "--show-toplevel")
        return Path(root) if root else None

    def remote_url(self, remote: str | None = None) -> str | None:
        return self._git("remote", "get-url", remote or self.remote)

    def origin_workspace_and_repo(self, remote: str | None = None) -> RepoCoordinates | None:
        url = self.remote_url(remote)
        if not url:
            return None
        coords = parse_remote_url(url)
        if coords is None:
            logger.debug("Remote URL %r is not a Bitbucket repository", url)
        return coords

    def _git(self, *args: str) -> str | None:
        try:
            result = subprocess.run(
                ["git", *args],
                capture_output=True,
                text=True,
                timeout=_GIT_TIMEOUT,
                cwd=self.cwd,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired, NotADirectoryError) as e:
            logger.debug("git %s failed: %s", " ".join(args), e)
            return None
        if result.returncode != 0:
            logger.debug("git %s exited %d: %s", " ".join(args), result.returncode, result.stderr.strip())
            return None
        return result.stdout.strip() or None
