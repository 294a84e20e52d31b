"""Domain models passed between the resolver, the diff engine and RepoService."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Callable


@dataclass(frozen=True)
class RepoCoordinates:
    workspace: str
    repo_slug: str

    def __str__(self) -> str:
        return f"{self.workspace}/{self.repo_slug}"


@dataclass(frozen=True)
class ActiveContext:
    """Fully resolved target of the current command. Computed once per invocation."""

    workspace: str
    repo_slug: str
    pr_id: int | None = None
    branch: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.workspace}/{self.repo_slug}"


# ---------------------------------------------------------------------------
# Diffs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TruncationMarker:
    """Stands in for a diff body that exceeded --max-diff-size."""

    changed_line_count: int
    max_diff_size: int

    def __str__(self) -> str:
        return (
            f"[diff elided: {self.changed_line_count} changed lines exceeds the limit of {self.max_diff_size}; "
            "raise --max-diff-size to show it]"
        )


@dataclass
class ChangedFile:
    """One file of a pull request diff.

    The diff text is produced by ``loader`` on first access to ``content`` and
    cached. Once ``truncation`` is set, ``content`` returns the marker and the
    loader is never called.
    """

    path: str
    changed_line_count: int
    loader: Callable[[], str] = field(default=lambda: "", repr=False, compare=False)
    truncation: TruncationMarker | None = None
    _cache: str | None = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def from_text(cls, path: str, text: str, changed_line_count: int) -> ChangedFile:
        return cls(path=path, changed_line_count=changed_line_count, loader=lambda: text)

    @property
    def is_truncated(self) -> bool:
        return self.truncation is not None

    @property
    def content(self) -> str | TruncationMarker:
        if self.truncation is not None:
            return self.truncation
        if self._cache is None:
            self._cache = self.loader()
        return self._cache

    def truncated(self, max_diff_size: int) -> ChangedFile:
        """Return a copy whose body is replaced by a TruncationMarker."""
        return replace(self, truncation=TruncationMarker(self.changed_line_count, max_diff_size))


# ---------------------------------------------------------------------------
# Pull requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PullRequestSummary:
    id: int
    source_branch: str
    title: str


@dataclass
class PullRequest:
    id: int
    title: str
    state: str
    source_branch: str
    destination_branch: str
    author: str = ""
    description: str = ""
    created_on: str = ""
    updated_on: str = ""
    url: str = ""


@dataclass
class PullRequestComment:
    id: int
    author: str
    body: str
    created_on: str = ""
    path: str | None = None
    line: int | None = None


@dataclass
class Repository:
    full_name: str
    name: str
    description: str = ""
    is_private: bool = True
    updated_on: str = ""


class Decision(str, enum.Enum):
    """Terminal outcome of a review session."""

    APPROVE = "approve"
    REQUEST_CHANGES = "request-changes"
    COMMENT = "comment"

    @property
    def label(self) -> str:
        return {
            Decision.APPROVE: "Approve",
            Decision.REQUEST_CHANGES: "Request changes",
            Decision.COMMENT: "Comment",
        }[self]


@dataclass(frozen=True)
class InlineComment:
    path: str
    line: int
    text: str
