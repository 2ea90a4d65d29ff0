"""Unified-diff parsing and full-file diff reconstruction."""

from __future__ import annotations

import re
from difflib import SequenceMatcher

from commitlens.models import DiffContent, DiffHunk, DiffLine, LineType

HUNK_HEADER_PATTERN = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<section>.*)$"
)
NO_NEWLINE_MARKER = "\\"


class DiffParseError(ValueError):
    """Raised when a patch contains a malformed hunk header."""

    def __init__(self, message: str, *, line_number: int) -> None:
        super().__init__(message)
        self.line_number = line_number


class _OpenHunk:
    """Mutable accumulator for the hunk currently being parsed."""

    __slots__ = ("header", "old_start", "old_count", "new_start", "new_count", "section", "lines")

    def __init__(self, header_text: str, match: re.Match[str]) -> None:
        self.header = DiffLine(line_type=LineType.HEADER, content=header_text)
        self.old_start = int(match.group("old_start"))
        self.new_start = int(match.group("new_start"))
        old_count = match.group("old_count")
        new_count = match.group("new_count")
        self.old_count = int(old_count) if old_count is not None else 1
        self.new_count = int(new_count) if new_count is not None else 1
        self.section = match.group("section").strip()
        self.lines: list[DiffLine] = []

    def close(self) -> DiffHunk:
        return DiffHunk(
            header=self.header,
            old_start=self.old_start,
            old_count=self.old_count,
            new_start=self.new_start,
            new_count=self.new_count,
            section=self.section,
            lines=tuple(self.lines),
        )


def parse_unified_diff_lines(patch_text: str) -> tuple[tuple[DiffHunk, ...], tuple[DiffLine, ...]]:
    """Parse a unified diff into hunks plus the flat list of classified lines.

    Lines before the first hunk header (file headers, index lines) are ignored,
    and ``\\ No newline at end of file`` annotations are skipped.
    """
    hunks: list[DiffHunk] = []
    all_lines: list[DiffLine] = []
    current: _OpenHunk | None = None
    old_line_no = 0
    new_line_no = 0

    for line_number, line in enumerate(split_text_lines(patch_text), start=1):
        if line.startswith("@@"):
            header_match = HUNK_HEADER_PATTERN.match(line)
            if header_match is None:
                raise DiffParseError(
                    f"Malformed hunk header on line {line_number}: '{line}'.",
                    line_number=line_number,
                )
            if current is not None:
                hunks.append(current.close())
            current = _OpenHunk(line, header_match)
            old_line_no = max(current.old_start - 1, 0)
            new_line_no = max(current.new_start - 1, 0)
            continue

        if current is None or line.startswith(NO_NEWLINE_MARKER):
            continue

        if line.startswith("+"):
            new_line_no += 1
            diff_line = DiffLine(
                line_type=LineType.ADDITION,
                content=line[1:],
                new_line_no=new_line_no,
            )
        elif line.startswith("-"):
            old_line_no += 1
            diff_line = DiffLine(
                line_type=LineType.DELETION,
                content=line[1:],
                old_line_no=old_line_no,
            )
        else:
            old_line_no += 1
            new_line_no += 1
            diff_line = DiffLine(
                line_type=LineType.CONTEXT,
                content=line[1:] if line.startswith(" ") else line,
                old_line_no=old_line_no,
                new_line_no=new_line_no,
            )

        current.lines.append(diff_line)
        all_lines.append(diff_line)

    if current is not None:
        hunks.append(current.close())

    return tuple(hunks), tuple(all_lines)


def parse_unified_diff(patch_text: str) -> tuple[DiffHunk, ...]:
    """Parse a unified diff patch into its hunks."""
    hunks, _lines = parse_unified_diff_lines(patch_text)
    return hunks


def split_text_lines(text: str) -> list[str]:
    """Split text on newlines, dropping line terminators.

    A trailing terminator does not produce an extra empty line.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def create_full_file_diff(
    old_text: str,
    new_text: str,
    patch: str | None = None,
) -> DiffContent:
    """Build a line-numbered full-file view of the change from old to new text.

    Replaced blocks are emitted as all deletions followed by all additions. When
    a non-empty patch is supplied its hunks are parsed for hunk navigation.
    """
    old_lines = split_text_lines(old_text)
    new_lines = split_text_lines(new_text)
    matcher = SequenceMatcher(None, old_lines, new_lines, autojunk=False)

    full_file_view: list[DiffLine] = []
    old_line_no = 0
    new_line_no = 0
    for tag, old_begin, old_end, new_begin, new_end in matcher.get_opcodes():
        if tag == "equal":
            for content in old_lines[old_begin:old_end]:
                old_line_no += 1
                new_line_no += 1
                full_file_view.append(
                    DiffLine(
                        line_type=LineType.CONTEXT,
                        content=content,
                        old_line_no=old_line_no,
                        new_line_no=new_line_no,
                    )
                )
            continue

        for content in old_lines[old_begin:old_end]:
            old_line_no += 1
            full_file_view.append(
                DiffLine(line_type=LineType.DELETION, content=content, old_line_no=old_line_no)
            )
        for content in new_lines[new_begin:new_end]:
            new_line_no += 1
            full_file_view.append(
                DiffLine(line_type=LineType.ADDITION, content=content, new_line_no=new_line_no)
            )

    hunks = parse_unified_diff(patch) if patch else ()
    return DiffContent(hunks=hunks, full_file_view=tuple(full_file_view), new_text=new_text)
