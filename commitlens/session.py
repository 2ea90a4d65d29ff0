"""Review session state and the navigation entry points."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

import httpx

from commitlens.cache import DiffCache
from commitlens.commit_files import CommitFileStore
from commitlens.config import SessionConfig
from commitlens.diff_loader import LazyDiffLoader, resolve_base_sha
from commitlens.diff_parser import DiffParseError
from commitlens.github_client import GitHubApiError, GitHubInputError, RepositoryGateway
from commitlens.models import Commit, FileChange, PullRequest
from commitlens.prefetch import PrefetchScheduler
from commitlens.progress import (
    ErrorState,
    LoadComplete,
    LoadingState,
    LoadingStatus,
    LoadingUpdate,
    LoadStep,
    ReadyState,
    SessionState,
    StatusUpdate,
    StepStatus,
)

PROGRESS_CHANNEL_SIZE = 10

logger = logging.getLogger(__name__)


class ReviewSession:
    """Everything the renderer reads for one pull request under review."""

    def __init__(
        self,
        gateway: RepositoryGateway,
        *,
        owner: str,
        repo: str,
        number: int,
        config: SessionConfig | None = None,
        diff_cache: DiffCache | None = None,
    ) -> None:
        self.gateway = gateway
        self.owner = owner
        self.repo = repo
        self.number = number
        self.config = config if config is not None else SessionConfig()
        self.diff_cache = (
            diff_cache if diff_cache is not None else DiffCache(self.config.diff_cache_capacity)
        )
        self.diff_loader = LazyDiffLoader(gateway, self.diff_cache, owner=owner, repo=repo)
        self.state: SessionState = LoadingState(LoadingStatus.initial())
        self.updates: asyncio.Queue[LoadingUpdate] = asyncio.Queue(maxsize=PROGRESS_CHANNEL_SIZE)
        self.reset()

    def reset(self) -> None:
        """Drop all loaded PR data; caches stay warm."""
        self.pr: PullRequest | None = None
        self.commits: list[Commit] = []
        self.files: list[FileChange] = []
        self.current_commit_index = 0
        self.commit_store = CommitFileStore(self.gateway, self.owner, self.repo)
        self.prefetcher = PrefetchScheduler(self.commit_store)

    @property
    def current_commit(self) -> Commit | None:
        if not self.commits:
            return None
        return self.commits[self.current_commit_index]

    @property
    def position_label(self) -> str:
        """Short ``[i/n] sha - summary`` description of the current commit."""
        commit = self.current_commit
        if commit is None:
            return "No commits in this PR"
        return (
            f"[{self.current_commit_index + 1}/{len(self.commits)}] "
            f"{commit.short_sha} - {commit.summary[:50]}"
        )

    async def load_commit_files(self, commit_index: int) -> None:
        """Make ``files`` the file list of the commit at ``commit_index``."""
        if not 0 <= commit_index < len(self.commits):
            return
        if commit_index == self.current_commit_index and self.files:
            sha = self.commits[commit_index].sha
            if self.commit_store.contains(sha):
                return

        stored = await self.commit_store.get_or_fetch(commit_index)
        # Copies keep lazily attached diffs out of the shared store entry.
        self.files = [replace(file_change) for file_change in stored]
        self.current_commit_index = commit_index

    async def load_file_diff(self, file_index: int) -> None:
        """Attach the diff for ``files[file_index]``; failures degrade to a per-file message."""
        if not 0 <= file_index < len(self.files):
            return
        file_change = self.files[file_index]
        if file_change.diff_content is not None or self.pr is None:
            return

        if self.commits:
            commit_index = self.current_commit_index
            base_sha = resolve_base_sha(self.pr, self.commits, commit_index)
            head_sha = self.commits[commit_index].sha
        else:
            base_sha = self.pr.base.sha
            head_sha = self.pr.head.sha
        try:
            await self.diff_loader.load(file_change, base_sha=base_sha, head_sha=head_sha)
        except (GitHubApiError, GitHubInputError, DiffParseError, httpx.HTTPError) as error:
            logger.warning("Diff unavailable for %s: %s", file_change.filename, error)
            file_change.diff_error = f"Diff unavailable: {error}"

    async def next_commit(self) -> bool:
        """Advance to the next commit; returns whether the position changed."""
        if self.current_commit_index + 1 >= len(self.commits):
            return False
        await self._move_to_commit(self.current_commit_index + 1)
        return True

    async def prev_commit(self) -> bool:
        """Step back to the previous commit; returns whether the position changed."""
        if self.current_commit_index == 0:
            return False
        await self._move_to_commit(self.current_commit_index - 1)
        return True

    async def _move_to_commit(self, commit_index: int) -> None:
        sha = self.commits[commit_index].sha
        if self.commit_store.contains(sha):
            await self.load_commit_files(commit_index)
            return

        status = LoadingStatus.initial()
        for step in (LoadStep.FETCH_PR_DETAILS, LoadStep.FETCH_COMMITS):
            status.transition(step, StepStatus.IN_PROGRESS)
            status.transition(step, StepStatus.COMPLETED)
        status.transition(LoadStep.FETCH_FILES, StepStatus.IN_PROGRESS)
        status.current_message = f"Loading commit {commit_index + 1} of {len(self.commits)}..."
        self.state = LoadingState(status)
        try:
            await self.load_commit_files(commit_index)
        finally:
            self.state = ReadyState()

    def drain_updates(self) -> bool:
        """Apply every pending bootstrap message without blocking.

        Returns whether a terminal message was seen.
        """
        finished = False
        while True:
            try:
                update = self.updates.get_nowait()
            except asyncio.QueueEmpty:
                return finished
            if isinstance(update, StatusUpdate):
                self.state = LoadingState(update.status)
            elif isinstance(update, LoadComplete):
                finished = True
                if update.error is None:
                    self.state = ReadyState()
                else:
                    self.state = ErrorState(update.error)
