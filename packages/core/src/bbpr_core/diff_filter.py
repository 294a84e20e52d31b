"""Path-pattern and size filtering of pull request diffs.

Patterns apply to repository-relative paths, never to the local filesystem,
so they are compiled here rather than handed to a filesystem glob:

  *          any run of characters inside one path segment
  ?          one character other than "/"
  [abc]      a character class ([!abc] negates)
  **         any number of whole segments, including none
  dir/       every path under the literal directory prefix, recursively
  a/b.py     a literal path: that file, or everything under it as a directory

Patterns are OR-ed together and an empty pattern set matches every file.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable

from bbpr_core.errors import ValidationError
from bbpr_core.models import ChangedFile

logger = logging.getLogger(__name__)

_WILDCARDS = set("*?[")


@dataclass(frozen=True)
class DiffFilterSpec:
    patterns: frozenset[str] = field(default_factory=frozenset)
    max_diff_size: int | None = None

    @classmethod
    def build(cls, patterns: Iterable[str] = (), max_diff_size: int | None = None) -> DiffFilterSpec:
        if max_diff_size is not None and max_diff_size < 0:
            raise ValidationError(f"--max-diff-size must be zero or positive, got {max_diff_size}")
        return cls(patterns=frozenset(p for p in patterns if p), max_diff_size=max_diff_size)


def compile_pattern(pattern: str) -> Callable[[str], bool]:
    """Turn one pattern into a predicate over repository-relative paths."""
    if not pattern:
        raise ValidationError("Empty path pattern")
    pattern = pattern.removeprefix("./")

    if pattern.endswith("/"):
        prefix = pattern
        return lambda path: path.startswith(prefix)

    if not _WILDCARDS & set(pattern):
        literal = pattern
        return lambda path: path == literal or path.startswith(literal + "/")

    regex = re.compile(_translate(pattern))
    return lambda path: regex.fullmatch(path) is not None


def _translate(pattern: str) -> str:
    """Translate a glob into a regex where * never crosses "/"."""
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    # "**/" : zero or more leading directories.
                    i += 1
                    out.append(r"(?:[^/]+/)*")
                else:
                    out.append(r".*")
                continue
            out.append(r"[^/]*")
        elif c == "?":
            out.append(r"[^/]")
        elif c == "[":
            end = pattern.find("]", i + 2 if pattern[i + 1 : i + 2] in ("!", "]") else i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = end
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


class DiffFilterEngine:
    """Applies a DiffFilterSpec to an ordered list of changed files."""

    def __init__(self, spec: DiffFilterSpec):
        self.spec = spec
        self._matchers = [compile_pattern(p) for p in sorted(spec.patterns)]

    def matches(self, path: str) -> bool:
        if not self._matchers:
            return True
        return any(match(path) for match in self._matchers)

    def filter(self, files: Iterable[ChangedFile]) -> list[ChangedFile]:
        """Files passing the pattern test, in input order, oversize bodies elided.

        A non-empty pattern set that matches nothing yields an empty list;
        that is a successful result, not an error.
        """
        limit = self.spec.max_diff_size
        result = []
        for f in files:
            if not self.matches(f.path):
                continue
            if limit is not None and f.changed_line_count > limit:
                logger.debug("Eliding %s: %d changed lines > %d", f.path, f.changed_line_count, limit)
                f = f.truncated(limit)
            result.append(f)
        return result


def filter_files(files: Iterable[ChangedFile], spec: DiffFilterSpec) -> list[ChangedFile]:
    return DiffFilterEngine(spec).filter(files)
