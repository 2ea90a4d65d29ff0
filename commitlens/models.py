"""Pull request, commit, and diff data models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class FileStatus(StrEnum):
    """Change status of a file, using GitHub's status vocabulary."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"

    @classmethod
    def from_api(cls, value: str) -> FileStatus:
        """Map a GitHub file status to a known status, defaulting to modified."""
        try:
            return cls(value)
        except ValueError:
            return cls.MODIFIED


class LineType(StrEnum):
    """Classification of one rendered diff line."""

    ADDITION = "addition"
    DELETION = "deletion"
    CONTEXT = "context"
    HEADER = "header"


@dataclass(frozen=True, slots=True)
class DiffLine:
    """One annotated line of a diff.

    Additions carry only a new-side number, deletions only an old-side number,
    context lines both, and header lines neither.
    """

    line_type: LineType
    content: str
    old_line_no: int | None = None
    new_line_no: int | None = None


@dataclass(frozen=True, slots=True)
class DiffHunk:
    """A contiguous block of a unified diff delimited by an ``@@`` header."""

    header: DiffLine
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str = ""
    lines: tuple[DiffLine, ...] = ()

    @property
    def old_side_length(self) -> int:
        """Number of hunk lines present on the old side."""
        return sum(1 for line in self.lines if line.old_line_no is not None)

    @property
    def new_side_length(self) -> int:
        """Number of hunk lines present on the new side."""
        return sum(1 for line in self.lines if line.new_line_no is not None)


@dataclass(frozen=True, slots=True)
class DiffContent:
    """Reconstructed diff: hunks for navigation plus the full-file view.

    ``new_text`` is the new-side file text the view was built from.
    """

    hunks: tuple[DiffHunk, ...] = ()
    full_file_view: tuple[DiffLine, ...] = ()
    new_text: str = ""

    @property
    def additions(self) -> int:
        """Count of added lines in the full-file view."""
        return sum(1 for line in self.full_file_view if line.line_type is LineType.ADDITION)

    @property
    def deletions(self) -> int:
        """Count of deleted lines in the full-file view."""
        return sum(1 for line in self.full_file_view if line.line_type is LineType.DELETION)

    def change_block_starts(self) -> tuple[int, ...]:
        """Return full-file view indices where a run of changed lines begins."""
        starts: list[int] = []
        in_block = False
        for index, line in enumerate(self.full_file_view):
            if line.line_type in (LineType.ADDITION, LineType.DELETION):
                if not in_block:
                    starts.append(index)
                    in_block = True
            else:
                in_block = False
        return tuple(starts)


@dataclass(slots=True)
class FileChange:
    """A changed file as reported for a commit or a whole pull request.

    Diff fields are attached lazily and replaced wholesale.
    """

    filename: str
    status: FileStatus
    additions: int
    deletions: int
    patch: str | None = None
    previous_filename: str | None = None
    raw_content: str | None = None
    diff_content: DiffContent | None = None
    diff_error: str | None = None

    @property
    def is_binary(self) -> bool:
        """Return whether GitHub omitted the patch (binary or oversized file)."""
        return self.patch is None


@dataclass(frozen=True, slots=True)
class CommitAuthor:
    """Git identity attached to a commit."""

    name: str
    email: str
    date: datetime | None


@dataclass(frozen=True, slots=True)
class Commit:
    """One commit of a pull request."""

    sha: str
    message: str
    author: CommitAuthor
    committer: CommitAuthor
    author_login: str | None = None
    committer_login: str | None = None

    @property
    def short_sha(self) -> str:
        """Abbreviated commit SHA."""
        return self.sha[:7]

    @property
    def summary(self) -> str:
        """First line of the commit message."""
        first_line, _, _ = self.message.partition("\n")
        return first_line


@dataclass(frozen=True, slots=True)
class Branch:
    """One side of a pull request comparison."""

    label: str
    ref: str
    sha: str


@dataclass(frozen=True, slots=True)
class PullRequest:
    """Pull request metadata and aggregate stats."""

    number: int
    title: str
    body: str
    state: str
    author_login: str
    base: Branch
    head: Branch
    commits: int = 0
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class PullRequestReference:
    """Owner, repository, and number identifying one pull request."""

    owner: str
    repo: str
    number: int

    @property
    def full_name(self) -> str:
        """Repository in owner/repo format."""
        return f"{self.owner}/{self.repo}"
