"""Bitbucket Cloud REST API v2.0 implementation of RepoService."""

from __future__ import annotations

import logging
import time

import requests

from bbpr_core.diff import parse_unified_diff
from bbpr_core.errors import AuthError, NetworkError, NotFoundError, RateLimitError
from bbpr_core.models import (
    ChangedFile,
    Decision,
    InlineComment,
    PullRequest,
    PullRequestComment,
    PullRequestSummary,
    Repository,
)
from bbpr_core.service import RepoService

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.bitbucket.org/2.0"
_DEFAULT_TIMEOUT = (5, 30)  # (connect, read) seconds
_PAGE_LEN = 50


class BitbucketService(RepoService):
    """Talks to Bitbucket with a shared requests.Session.

    ``auth`` is either a ``(username, app_password)`` tuple for Basic auth or
    a bare token string sent as a Bearer header. None sends no credentials.
    """

    def __init__(
        self,
        auth: tuple[str, str] | str | None = None,
        base_url: str = DEFAULT_API_URL,
        timeout: tuple[int, int] = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["Accept"] = "application/json"
        if isinstance(auth, tuple):
            self.session.auth = auth
        elif auth:
            self.session.headers["Authorization"] = f"Bearer {auth}"

    # ------------------------------------------------------------------ #
    # RepoService                                                          #
    # ------------------------------------------------------------------ #

    def list_open_pull_requests(
        self, workspace: str, repo_slug: str, branch_filter: str | None = None
    ) -> list[PullRequestSummary]:
        params = {"state": "OPEN", "pagelen": _PAGE_LEN}
        if branch_filter is not None:
            escaped = branch_filter.replace("\\", "\\\\").replace('"', '\\"')
            params["q"] = f'source.branch.name = "{escaped}"'
        values = self._paginate(self._repo_path(workspace, repo_slug, "pullrequests"), params)
        return [
            PullRequestSummary(
                id=v["id"],
                source_branch=v.get("source", {}).get("branch", {}).get("name", ""),
                title=v.get("title", ""),
            )
            for v in values
        ]

    def get_pull_request(self, workspace: str, repo_slug: str, pr_id: int) -> PullRequest:
        data = self._get_json(self._repo_path(workspace, repo_slug, f"pullrequests/{pr_id}"))
        return _to_pull_request(data)

    def get_diff(self, workspace: str, repo_slug: str, pr_id: int) -> list[ChangedFile]:
        response = self._request(
            "GET",
            self._repo_path(workspace, repo_slug, f"pullrequests/{pr_id}/diff"),
            headers={"Accept": "text/plain"},
        )
        return parse_unified_diff(response.text)

    def submit_decision(
        self, workspace: str, repo_slug: str, pr_id: int, decision: Decision, body: str | None = None
    ) -> None:
        base = self._repo_path(workspace, repo_slug, f"pullrequests/{pr_id}")
        if decision is Decision.APPROVE:
            self._request("POST", f"{base}/approve")
        elif decision is Decision.REQUEST_CHANGES:
            self._request("POST", f"{base}/request-changes")
        elif decision is Decision.COMMENT:
            self._request("POST", f"{base}/comments", json={"content": {"raw": body or ""}})
        else:
            raise ValueError(f"Unknown decision: {decision!r}")

    def submit_comment(self, workspace: str, repo_slug: str, pr_id: int, comment: InlineComment) -> None:
        payload = {
            "content": {"raw": comment.text},
            "inline": {"path": comment.path, "to": comment.line},
        }
        self._request("POST", self._repo_path(workspace, repo_slug, f"pullrequests/{pr_id}/comments"), json=payload)

    def list_pull_requests(
        self, workspace: str, repo_slug: str, state: str = "OPEN", limit: int | None = None
    ) -> list[PullRequest]:
        values = self._paginate(
            self._repo_path(workspace, repo_slug, "pullrequests"),
            {"state": state.upper(), "pagelen": _PAGE_LEN},
            limit=limit,
        )
        return [_to_pull_request(v) for v in values]

    def list_comments(self, workspace: str, repo_slug: str, pr_id: int) -> list[PullRequestComment]:
        values = self._paginate(
            self._repo_path(workspace, repo_slug, f"pullrequests/{pr_id}/comments"), {"pagelen": 100}
        )
        comments = []
        for v in values:
            if v.get("deleted"):
                continue
            inline = v.get("inline") or {}
            comments.append(
                PullRequestComment(
                    id=v["id"],
                    author=(v.get("user") or {}).get("display_name", ""),
                    body=(v.get("content") or {}).get("raw", ""),
                    created_on=v.get("created_on", ""),
                    path=inline.get("path"),
                    line=inline.get("to") or inline.get("from"),
                )
            )
        return comments

    def list_repositories(self, workspace: str, limit: int | None = None) -> list[Repository]:
        params = {"pagelen": _PAGE_LEN, "sort": "-updated_on"}
        values = self._paginate(f"repositories/{workspace}", params, limit=limit)
        return [
            Repository(
                full_name=v.get("full_name", ""),
                name=v.get("name", ""),
                description=v.get("description") or "",
                is_private=bool(v.get("is_private", True)),
                updated_on=v.get("updated_on", ""),
            )
            for v in values
        ]

    def get_current_user(self) -> dict:
        return self._get_json("user")

    # ------------------------------------------------------------------ #
    # HTTP plumbing                                                        #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _repo_path(workspace: str, repo_slug: str, suffix: str) -> str:
        return f"repositories/{workspace}/{repo_slug}/{suffix}"

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = self._url(path)
        logger.debug("%s %s", method, url)
        start = time.monotonic()
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Bitbucket request timed out: {method} {url}") from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"Could not reach Bitbucket: {e}") from e

        logger.debug("%s %s -> %d in %.1fs", method, url, response.status_code, time.monotonic() - start)
        _raise_for_status(response, method, url)
        return response

    def _get_json(self, path: str, params: dict | None = None) -> dict:
        response = self._request("GET", path, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"Bitbucket returned a non-JSON response for {response.url}") from e

    def _paginate(self, path: str, params: dict | None = None, limit: int | None = None) -> list[dict]:
        """Follow Bitbucket's ``next`` links until exhausted or ``limit`` reached."""
        values: list[dict] = []
        url: str | None = path
        while url:
            # The next link already embeds the query string.
            data = self._get_json(url, params=params if url == path else None)
            values.extend(data.get("values", []))
            if limit is not None and len(values) >= limit:
                return values[:limit]
            url = data.get("next")
        return values


def _raise_for_status(response: requests.Response, method: str, url: str) -> None:
    status = response.status_code
    if status < 400:
        return
    detail = _error_detail(response)
    message = f"Bitbucket API {method} {url} failed ({status}): {detail}"
    if status in (401, 403):
        raise AuthError(message)
    if status == 404:
        raise NotFoundError(message)
    if status == 429:
        retry_after = response.headers.get("Retry-After")
        raise RateLimitError(message, retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None)
    raise NetworkError(message)


def _error_detail(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] or response.reason or ""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return str(data)[:200]


def _to_pull_request(data: dict) -> PullRequest:
    return PullRequest(
        id=data["id"],
        title=data.get("title", ""),
        state=data.get("state", ""),
        source_branch=data.get("source", {}).get("branch", {}).get("name", ""),
        destination_branch=data.get("destination", {}).get("branch", {}).get("name", ""),
        author=(data.get("author") or {}).get("display_name", ""),
        description=data.get("description") or "",
        created_on=data.get("created_on", ""),
        updated_on=data.get("updated_on", ""),
        url=data.get("links", {}).get("html", {}).get("href", ""),
    )
