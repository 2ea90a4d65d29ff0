"""Per-commit file lists with the last-commit shortcut."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from commitlens.github_client import RepositoryGateway
from commitlens.models import Commit, FileChange

logger = logging.getLogger(__name__)


class CommitFileStore:
    """Maps commit SHA to the files that commit changed.

    The last commit of a pull request reuses the PR-wide file list instead of
    issuing its own fetch. Entries are kept for the whole session.
    """

    def __init__(self, gateway: RepositoryGateway, owner: str, repo: str) -> None:
        self._gateway = gateway
        self._owner = owner
        self._repo = repo
        self._files_by_sha: dict[str, list[FileChange]] = {}
        self.commits: Sequence[Commit] = ()
        self.pr_files: list[FileChange] | None = None

    def contains(self, sha: str) -> bool:
        return sha in self._files_by_sha

    def get(self, sha: str) -> list[FileChange] | None:
        return self._files_by_sha.get(sha)

    def put(self, sha: str, files: list[FileChange]) -> None:
        self._files_by_sha[sha] = files

    def __len__(self) -> int:
        return len(self._files_by_sha)

    def is_last_commit(self, commit_index: int) -> bool:
        return commit_index == len(self.commits) - 1

    async def get_or_fetch(self, commit_index: int) -> list[FileChange]:
        """Return the file list for the commit at ``commit_index``, fetching if needed."""
        if not 0 <= commit_index < len(self.commits):
            raise IndexError(f"Commit index {commit_index} out of range.")

        sha = self.commits[commit_index].sha
        stored = self._files_by_sha.get(sha)
        if stored is not None:
            return stored

        if self.is_last_commit(commit_index) and self.pr_files is not None:
            logger.debug("Using PR-wide file list for last commit %s.", sha[:7])
            self._files_by_sha[sha] = self.pr_files
            return self.pr_files

        files = await self._gateway.get_commit_files(self._owner, self._repo, sha)
        self._files_by_sha[sha] = files
        return files
