"""Best-effort background warming of commit file lists."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Collection
from dataclasses import dataclass, field
from enum import StrEnum

from commitlens.commit_files import CommitFileStore

logger = logging.getLogger(__name__)


class FailurePolicy(StrEnum):
    """What a prefetch wave does with individual fetch failures."""

    IGNORE = "ignore"
    RAISE = "raise"


@dataclass(slots=True)
class PrefetchReport:
    """Outcome of one or more prefetch waves."""

    fetched: list[str] = field(default_factory=list)
    failed: dict[str, BaseException] = field(default_factory=dict)

    def merge(self, other: PrefetchReport) -> None:
        self.fetched.extend(other.fetched)
        self.failed.update(other.failed)


class PrefetchScheduler:
    """Launches bounded waves of concurrent commit file fetches.

    Concurrency is bounded by selection: one wave never starts more than
    ``max_parallel`` fetches. SHAs already in flight from this scheduler are
    skipped, so overlapping calls never fetch the same commit twice.
    """

    def __init__(
        self,
        store: CommitFileStore,
        *,
        failure_policy: FailurePolicy = FailurePolicy.IGNORE,
    ) -> None:
        self._store = store
        self.failure_policy = failure_policy
        self._in_flight: set[str] = set()

    def pending_indices(self, max_parallel: int, *, skip: Collection[str] = ()) -> list[int]:
        """Pick up to ``max_parallel`` commit indices, in order, that still need fetching."""
        selected: list[int] = []
        for index, commit in enumerate(self._store.commits):
            if len(selected) >= max_parallel:
                break
            if commit.sha in skip or commit.sha in self._in_flight:
                continue
            if self._store.contains(commit.sha):
                continue
            selected.append(index)
        return selected

    async def prefetch(self, max_parallel: int, *, skip: Collection[str] = ()) -> PrefetchReport:
        """Run one wave of at most ``max_parallel`` concurrent fetches."""
        if max_parallel < 1:
            raise ValueError(f"max_parallel must be at least 1, got {max_parallel}.")

        indices = self.pending_indices(max_parallel, skip=skip)
        report = PrefetchReport()
        if not indices:
            return report

        shas = [self._store.commits[index].sha for index in indices]
        self._in_flight.update(shas)
        try:
            results = await asyncio.gather(
                *(self._store.get_or_fetch(index) for index in indices),
                return_exceptions=True,
            )
        finally:
            self._in_flight.difference_update(shas)

        for sha, result in zip(shas, results, strict=True):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.warning("Failed to pre-fetch commit %s: %s", sha[:7], result)
                report.failed[sha] = result
            else:
                report.fetched.append(sha)

        if report.failed and self.failure_policy is FailurePolicy.RAISE:
            raise next(iter(report.failed.values()))
        return report

    async def prefetch_all(self, max_parallel: int) -> PrefetchReport:
        """Repeat waves until every commit has been attempted once."""
        report = PrefetchReport()
        attempted: set[str] = set()
        while True:
            wave = await self.prefetch(max_parallel, skip=attempted)
            if not wave.fetched and not wave.failed:
                return report
            attempted.update(wave.fetched)
            attempted.update(wave.failed)
            report.merge(wave)
