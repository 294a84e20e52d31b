"""Split a raw `git diff` payload into per-file ChangedFile records."""

from __future__ import annotations

from bbpr_core.models import ChangedFile

_DIFF_HEADER = "diff --git "
_NULL_PATH = "/dev/null"


def split_file_diffs(diff_text: str) -> list[tuple[str, str]]:
    """Return ``(path, section_text)`` pairs in diff order."""
    sections: list[list[str]] = []
    for line in diff_text.splitlines(keepends=True):
        if line.startswith(_DIFF_HEADER) or not sections:
            sections.append([])
        sections[-1].append(line)

    result = []
    for lines in sections:
        if not lines or not lines[0].startswith(_DIFF_HEADER):
            # Preamble before the first header carries no file.
            continue
        text = "".join(lines)
        result.append((_section_path(lines), text))
    return result


def count_changed_lines(section_text: str) -> int:
    """Added plus removed lines, not counting the ---/+++ file headers."""
    count = 0
    in_hunk = False
    for line in section_text.splitlines():
        if line.startswith("@@"):
            in_hunk = True
            continue
        if not in_hunk:
            continue
        if line.startswith("+") or line.startswith("-"):
            count += 1
    return count


def parse_unified_diff(diff_text: str) -> list[ChangedFile]:
    """Parse a multi-file unified diff.

    Each section's text is captured once; ChangedFile.content returns it
    lazily so callers that only need paths and counts never materialize it.
    """
    files = []
    for path, text in split_file_diffs(diff_text):
        files.append(ChangedFile.from_text(path, text, count_changed_lines(text)))
    return files


def _section_path(lines: list[str]) -> str:
    """Path of the file a section describes.

    Prefers the +++ header (new side), falls back to --- for deletions, and
    finally to the ``diff --git a/x b/x`` header for binary or rename-only
    sections that have no ---/+++ lines.
    """
    old_path = new_path = None
    for line in lines[1:]:
        if line.startswith("@@"):
            break
        if line.startswith("+++ "):
            new_path = _strip_prefix(line[4:].rstrip("\n"), "b/")
        elif line.startswith("--- "):
            old_path = _strip_prefix(line[4:].rstrip("\n"), "a/")
        elif line.startswith("rename to "):
            new_path = line[len("rename to ") :].rstrip("\n")

    if new_path and new_path != _NULL_PATH:
        return new_path
    if old_path and old_path != _NULL_PATH:
        return old_path

    header = lines[0][len(_DIFF_HEADER) :].rstrip("\n")
    marker = header.rfind(" b/")
    if marker != -1:
        return header[marker + 3 :]
    return header.split(" ")[-1]


def _strip_prefix(path: str, prefix: str) -> str:
    # git appends a tab after paths containing spaces.
    path = path.split("\t", 1)[0]
    return path[len(prefix) :] if path.startswith(prefix) else path
