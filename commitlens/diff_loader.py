"""Cache-first, on-demand diff reconstruction for one file."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from commitlens.cache import DiffCache, DiffCacheKey
from commitlens.diff_parser import create_full_file_diff
from commitlens.github_client import RepositoryGateway
from commitlens.models import Commit, DiffContent, FileChange, FileStatus, PullRequest

logger = logging.getLogger(__name__)


def resolve_base_sha(pr: PullRequest, commits: Sequence[Commit], commit_index: int) -> str:
    """Comparison root for a commit: PR base for the first commit, else its parent in the list."""
    if commit_index == 0:
        return pr.base.sha
    return commits[commit_index - 1].sha


class LazyDiffLoader:
    """Attaches reconstructed diffs to files when navigation first needs them."""

    def __init__(
        self,
        gateway: RepositoryGateway,
        diff_cache: DiffCache,
        *,
        owner: str,
        repo: str,
    ) -> None:
        self._gateway = gateway
        self._diff_cache = diff_cache
        self._owner = owner
        self._repo = repo

    def cache_key(self, file_change: FileChange, *, base_sha: str, head_sha: str) -> DiffCacheKey:
        return DiffCacheKey(
            owner=self._owner,
            repo=self._repo,
            path=file_change.filename,
            base_sha=base_sha,
            head_sha=head_sha,
        )

    async def load(self, file_change: FileChange, *, base_sha: str, head_sha: str) -> DiffContent:
        """Attach and return the diff of ``file_change`` between two commits.

        Mutates ``file_change`` in place. Gateway and parse errors propagate.
        """
        if file_change.diff_content is not None:
            return file_change.diff_content

        cache_key = self.cache_key(file_change, base_sha=base_sha, head_sha=head_sha)
        cached = self._diff_cache.get(cache_key)
        if cached is not None:
            logger.debug("Diff cache hit for %s.", file_change.filename)
            file_change.raw_content = cached.new_text
            file_change.diff_content = cached
            file_change.diff_error = None
            return cached

        old_content = ""
        if file_change.status is not FileStatus.ADDED:
            old_path = file_change.previous_filename or file_change.filename
            old_content = await self._gateway.get_file_content(
                self._owner, self._repo, old_path, base_sha
            )

        new_content = ""
        if file_change.status is not FileStatus.REMOVED:
            new_content = await self._gateway.get_file_content(
                self._owner, self._repo, file_change.filename, head_sha
            )

        diff_content = create_full_file_diff(old_content, new_content, file_change.patch)
        file_change.raw_content = diff_content.new_text
        file_change.diff_content = diff_content
        file_change.diff_error = None
        self._diff_cache.put(cache_key, diff_content)
        return diff_content
