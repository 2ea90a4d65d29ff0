"""Bootstrap state machine that loads a pull request with visible progress."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace

from commitlens.progress import (
    LoadComplete,
    LoadingStatus,
    LoadingUpdate,
    LoadStep,
    StatusUpdate,
    StepStatus,
)
from commitlens.session import ReviewSession

logger = logging.getLogger(__name__)


class LoadPipeline:
    """Runs the bootstrap steps for one session and reports through its channel.

    Steps run strictly in order: PR details, commit list, PR-wide file list,
    then prefetch plus the first commit's files and first diff. A failure in
    any of the first three aborts the run; prefetch failures never do.
    """

    def __init__(self, session: ReviewSession) -> None:
        self.session = session
        self.status = LoadingStatus.initial()

    async def _publish(self, update: LoadingUpdate) -> None:
        await self.session.updates.put(update)

    async def _begin(self, step: LoadStep, message: str) -> None:
        logger.info("%s", message)
        self.status.transition(step, StepStatus.IN_PROGRESS)
        self.status.current_message = message
        await self._publish(StatusUpdate(self.status.snapshot()))

    async def _complete(self, step: LoadStep) -> None:
        self.status.transition(step, StepStatus.COMPLETED)
        await self._publish(StatusUpdate(self.status.snapshot()))

    async def _set_message(self, message: str) -> None:
        self.status.current_message = message
        await self._publish(StatusUpdate(self.status.snapshot()))

    async def run(self) -> None:
        """Execute every step, then post exactly one ``LoadComplete``."""
        session = self.session
        self.status = LoadingStatus.initial()
        session.reset()
        await self._publish(StatusUpdate(self.status.snapshot()))
        try:
            await self._load()
        except asyncio.CancelledError:
            raise
        except Exception as error:
            logger.error(
                "Failed to load PR data for %s/%s#%s: %s",
                session.owner,
                session.repo,
                session.number,
                error,
            )
            await self._publish(LoadComplete(error=f"Failed to load PR data: {error}"))
            return
        await self._publish(LoadComplete())

    async def _load(self) -> None:
        session = self.session
        gateway = session.gateway

        await self._begin(LoadStep.FETCH_PR_DETAILS, "Fetching pull request details...")
        session.pr = await gateway.get_pull_request(session.owner, session.repo, session.number)
        await self._complete(LoadStep.FETCH_PR_DETAILS)

        await self._begin(LoadStep.FETCH_COMMITS, "Fetching commits...")
        commits = await gateway.get_pr_commits(session.owner, session.repo, session.number)
        session.commits = commits
        session.commit_store.commits = commits
        self.status.rename(LoadStep.FETCH_COMMITS, f"Loading commits ({len(commits)} found)")
        await self._complete(LoadStep.FETCH_COMMITS)

        await self._begin(LoadStep.FETCH_FILES, "Fetching all PR file changes...")
        pr_files = await gateway.get_pr_files(session.owner, session.repo, session.number)
        session.commit_store.pr_files = pr_files
        await self._complete(LoadStep.FETCH_FILES)

        await self._begin(LoadStep.PROCESS_DIFFS, "Pre-fetching commit files...")
        if commits:
            report = await session.prefetcher.prefetch(session.config.prefetch_parallel)
            logger.info(
                "Pre-fetched %d commit(s), %d failed.", len(report.fetched), len(report.failed)
            )
            await self._set_message("Loading first commit...")
            await session.load_commit_files(0)
        else:
            session.files = [replace(file_change) for file_change in pr_files]
        if session.files:
            await session.load_file_diff(0)
        await self._complete(LoadStep.PROCESS_DIFFS)

    def spawn(self) -> asyncio.Task[None]:
        """Start the bootstrap as a background task of the running loop."""
        return asyncio.create_task(self.run())


def start_bootstrap(session: ReviewSession) -> asyncio.Task[None]:
    """Start (or restart, for a refresh) loading ``session`` in the background."""
    return LoadPipeline(session).spawn()
