"""Unit tests for the bootstrap pipeline and session navigation."""

from __future__ import annotations

import asyncio

import pytest
from commitlens.config import SessionConfig
from commitlens.github_client import GitHubApiError
from commitlens.models import FileStatus
from commitlens.pipeline import start_bootstrap
from commitlens.progress import (
    ErrorState,
    LoadComplete,
    LoadingState,
    LoadingUpdate,
    LoadStep,
    ReadyState,
    StatusUpdate,
    StepStatus,
)
from commitlens.session import ReviewSession

from fakes import FakeGateway, make_commits, make_file, run

STATUS_ORDER = [StepStatus.PENDING, StepStatus.IN_PROGRESS, StepStatus.COMPLETED]


def make_gateway(commit_count: int = 3) -> FakeGateway:
    commits = make_commits(commit_count)
    commit_files = {
        commit.sha: [make_file("a.py"), make_file(f"only_{index}.py", status=FileStatus.ADDED)]
        for index, commit in enumerate(commits)
    }
    contents = {("a.py", "base-sha"): "old\n"}
    for commit in commits:
        contents[("a.py", commit.sha)] = "new\n"
    contents[("a.py", "head-sha")] = "new\n"
    return FakeGateway(
        commits=commits,
        pr_files=[make_file("a.py"), make_file("b.py", status=FileStatus.ADDED)],
        commit_files=commit_files,
        contents=contents,
    )


def make_session(gateway: FakeGateway, config: SessionConfig | None = None) -> ReviewSession:
    return ReviewSession(gateway, owner="acme", repo="rocket", number=42, config=config)


async def bootstrap(session: ReviewSession) -> None:
    """Drive a bootstrap the way a render loop does: non-blocking drains per tick."""
    task = start_bootstrap(session)
    while not session.drain_updates():
        await asyncio.sleep(0)
    await task


async def collect_updates(session: ReviewSession) -> list[LoadingUpdate]:
    task = start_bootstrap(session)
    updates: list[LoadingUpdate] = []
    while True:
        update = await session.updates.get()
        updates.append(update)
        if isinstance(update, LoadComplete):
            break
    await task
    return updates


@pytest.mark.unit
def test_bootstrap_loads_first_commit_and_first_diff() -> None:
    gateway = make_gateway()

    async def scenario() -> ReviewSession:
        session = make_session(gateway)
        await bootstrap(session)
        return session

    session = run(scenario())

    assert isinstance(session.state, ReadyState)
    assert session.pr is gateway.pr
    assert session.commits == gateway.commits
    assert session.current_commit_index == 0
    assert [file_change.filename for file_change in session.files] == ["a.py", "only_0.py"]
    assert session.files[0].diff_content is not None
    assert session.files[1].diff_content is None
    assert session.position_label == "[1/3] sha0000 - Commit 0"
    # The last commit reuses the PR-wide list.
    assert gateway.commit_file_requests == [gateway.commits[0].sha, gateway.commits[1].sha]
    assert session.commit_store.get(gateway.commits[2].sha) is not None


@pytest.mark.unit
def test_bootstrap_reports_ordered_progress_and_one_completion() -> None:
    gateway = make_gateway()

    async def scenario() -> list[LoadingUpdate]:
        return await collect_updates(make_session(gateway))

    updates = run(scenario())

    assert isinstance(updates[-1], LoadComplete)
    assert updates[-1].error is None
    assert sum(isinstance(update, LoadComplete) for update in updates) == 1
    statuses = [update.status for update in updates if isinstance(update, StatusUpdate)]
    for previous, current in zip(statuses, statuses[1:]):
        for before, after in zip(previous.steps, current.steps, strict=True):
            assert STATUS_ORDER.index(after.status) >= STATUS_ORDER.index(before.status)
    final = statuses[-1]
    assert all(step.status is StepStatus.COMPLETED for step in final.steps)
    assert final.steps[LoadStep.FETCH_COMMITS].name == "Loading commits (3 found)"
    messages = [status.current_message for status in statuses]
    assert "Pre-fetching commit files..." in messages
    assert "Loading first commit..." in messages


@pytest.mark.unit
def test_bootstrap_state_changes_only_through_drained_updates() -> None:
    gateway = make_gateway()

    async def scenario() -> tuple[ReviewSession, list[LoadingUpdate], object]:
        session = make_session(gateway)
        await bootstrap(session)
        task = start_bootstrap(session)
        for _ in range(5):
            await asyncio.sleep(0)
        state_before_drain = session.state
        updates: list[LoadingUpdate] = []
        while not updates or not isinstance(updates[-1], LoadComplete):
            updates.append(await session.updates.get())
        await task
        return session, updates, state_before_drain

    session, updates, state_before_drain = run(scenario())

    assert isinstance(state_before_drain, ReadyState)
    assert isinstance(updates[0], StatusUpdate)
    assert updates[0].status.current_message == "Initializing..."
    assert isinstance(session.state, ReadyState)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("failing_call", "skipped_calls"),
    [
        ("get_pull_request", ["get_pr_commits", "get_pr_files"]),
        ("get_pr_commits", ["get_pr_files"]),
        ("get_pr_files", []),
    ],
)
def test_bootstrap_aborts_on_critical_failure(failing_call: str, skipped_calls: list[str]) -> None:
    gateway = make_gateway()
    gateway.errors[failing_call] = RuntimeError("boom")

    async def scenario() -> ReviewSession:
        session = make_session(gateway)
        await bootstrap(session)
        return session

    session = run(scenario())

    assert session.state == ErrorState("Failed to load PR data: boom")
    for call in skipped_calls:
        assert gateway.calls[call] == 0
    assert gateway.commit_file_requests == []


@pytest.mark.unit
def test_prefetch_failure_does_not_abort_bootstrap() -> None:
    gateway = make_gateway()
    gateway.errors[gateway.commits[1].sha] = RuntimeError("rate limited")

    async def scenario() -> ReviewSession:
        session = make_session(gateway)
        await bootstrap(session)
        return session

    session = run(scenario())

    assert isinstance(session.state, ReadyState)
    assert session.files[0].diff_content is not None
    assert not session.commit_store.contains(gateway.commits[1].sha)


@pytest.mark.unit
def test_pr_without_commits_shows_pr_wide_files() -> None:
    gateway = make_gateway(commit_count=0)

    async def scenario() -> ReviewSession:
        session = make_session(gateway)
        await bootstrap(session)
        return session

    session = run(scenario())

    assert isinstance(session.state, ReadyState)
    assert [file_change.filename for file_change in session.files] == ["a.py", "b.py"]
    assert session.position_label == "No commits in this PR"
    assert gateway.content_requests == [("a.py", "base-sha"), ("a.py", "head-sha")]
    assert gateway.commit_file_requests == []


@pytest.mark.unit
def test_navigation_loads_unfetched_commits_with_loading_state() -> None:
    gateway = make_gateway()
    states_during_fetch: list[object] = []

    async def scenario() -> tuple[ReviewSession, list[bool]]:
        session = make_session(gateway, SessionConfig(prefetch_parallel=1))
        await bootstrap(session)
        gateway.on_commit_fetch = lambda sha: states_during_fetch.append(session.state)
        moves = [
            await session.prev_commit(),
            await session.next_commit(),
            await session.next_commit(),
            await session.next_commit(),
            await session.prev_commit(),
        ]
        return session, moves

    session, moves = run(scenario())

    assert moves == [False, True, True, False, True]
    assert session.current_commit_index == 1
    assert [file_change.filename for file_change in session.files] == ["a.py", "only_1.py"]
    assert isinstance(session.state, ReadyState)
    assert len(states_during_fetch) == 1
    loading = states_during_fetch[0]
    assert isinstance(loading, LoadingState)
    assert loading.status.current_message == "Loading commit 2 of 3..."
    assert loading.status.steps[LoadStep.FETCH_FILES].status is StepStatus.IN_PROGRESS


@pytest.mark.unit
def test_session_files_are_copies_of_store_entries() -> None:
    gateway = make_gateway()

    async def scenario() -> ReviewSession:
        session = make_session(gateway)
        await bootstrap(session)
        return session

    session = run(scenario())
    stored = session.commit_store.get(gateway.commits[0].sha)

    assert stored is not None
    assert session.files[0].diff_content is not None
    assert stored[0].diff_content is None


@pytest.mark.unit
def test_diff_failure_degrades_to_single_file_and_retries() -> None:
    gateway = make_gateway()
    gateway.errors["get_file_content"] = GitHubApiError(
        "GitHub API request failed with status 502.",
        status_code=502,
        endpoint="/repos/acme/rocket/contents/a.py",
    )

    async def scenario() -> tuple[ReviewSession, str | None]:
        session = make_session(gateway)
        await bootstrap(session)
        degraded = session.files[0].diff_error
        del gateway.errors["get_file_content"]
        await session.load_file_diff(0)
        return session, degraded

    session, degraded = run(scenario())

    assert degraded == "Diff unavailable: GitHub API request failed with status 502."
    assert isinstance(session.state, ReadyState)
    assert session.files[0].diff_content is not None
    assert session.files[0].diff_error is None


@pytest.mark.unit
def test_load_file_diff_ignores_out_of_range_index() -> None:
    gateway = make_gateway()

    async def scenario() -> ReviewSession:
        session = make_session(gateway)
        await bootstrap(session)
        await session.load_file_diff(10)
        return session

    session = run(scenario())

    assert len(gateway.content_requests) == 2
    assert session.files[1].diff_content is None


@pytest.mark.unit
def test_refresh_reloads_from_scratch_with_warm_diff_cache() -> None:
    gateway = make_gateway()

    async def scenario() -> tuple[ReviewSession, int]:
        session = make_session(gateway)
        await bootstrap(session)
        await session.next_commit()
        content_requests = len(gateway.content_requests)
        await bootstrap(session)
        return session, content_requests

    session, content_requests = run(scenario())

    assert isinstance(session.state, ReadyState)
    assert session.current_commit_index == 0
    assert gateway.calls["get_pull_request"] == 2
    assert len(gateway.content_requests) == content_requests
    assert session.files[0].diff_content is not None
