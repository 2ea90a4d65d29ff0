"""Unit tests for the per-commit file store."""

from __future__ import annotations

import pytest
from commitlens.commit_files import CommitFileStore

from fakes import FakeGateway, make_commits, make_file, run


def make_store(gateway: FakeGateway) -> CommitFileStore:
    store = CommitFileStore(gateway, "acme", "rocket")
    store.commits = gateway.commits
    return store


@pytest.mark.unit
def test_get_or_fetch_fetches_once_and_stores() -> None:
    commits = make_commits(3)
    gateway = FakeGateway(
        commits=commits,
        commit_files={commits[0].sha: [make_file("a.py")]},
    )
    store = make_store(gateway)

    first = run(store.get_or_fetch(0))
    second = run(store.get_or_fetch(0))

    assert [file_change.filename for file_change in first] == ["a.py"]
    assert second is first
    assert gateway.commit_file_requests == [commits[0].sha]
    assert store.contains(commits[0].sha)
    assert len(store) == 1


@pytest.mark.unit
def test_last_commit_reuses_pr_file_list_without_fetch() -> None:
    commits = make_commits(3)
    pr_files = [make_file("a.py"), make_file("b.py", patch="@@ -0,0 +1 @@\n+b")]
    gateway = FakeGateway(commits=commits)
    store = make_store(gateway)
    store.pr_files = pr_files

    files = run(store.get_or_fetch(2))

    assert files is pr_files
    assert gateway.commit_file_requests == []
    assert store.get(commits[2].sha) is pr_files


@pytest.mark.unit
def test_last_commit_shortcut_matches_direct_fetch() -> None:
    commits = make_commits(2)
    pr_files = [make_file("a.py"), make_file("docs/readme.md", patch=None)]
    gateway = FakeGateway(commits=commits, commit_files={commits[1].sha: pr_files})

    shortcut_store = make_store(gateway)
    shortcut_store.pr_files = pr_files
    shortcut = run(shortcut_store.get_or_fetch(1))

    direct = run(make_store(gateway).get_or_fetch(1))

    assert [(f.filename, f.patch) for f in shortcut] == [(f.filename, f.patch) for f in direct]
    assert gateway.commit_file_requests == [commits[1].sha]


@pytest.mark.unit
def test_last_commit_without_pr_files_fetches() -> None:
    commits = make_commits(1)
    gateway = FakeGateway(commits=commits, commit_files={commits[0].sha: [make_file("a.py")]})
    store = make_store(gateway)

    files = run(store.get_or_fetch(0))

    assert [file_change.filename for file_change in files] == ["a.py"]
    assert gateway.commit_file_requests == [commits[0].sha]


@pytest.mark.unit
@pytest.mark.parametrize("index", [-1, 3])
def test_get_or_fetch_rejects_out_of_range_index(index: int) -> None:
    store = make_store(FakeGateway(commits=make_commits(3)))

    with pytest.raises(IndexError):
        run(store.get_or_fetch(index))


@pytest.mark.unit
def test_fetch_failure_leaves_store_empty() -> None:
    commits = make_commits(2)
    gateway = FakeGateway(commits=commits)
    gateway.errors[commits[0].sha] = RuntimeError("boom")
    store = make_store(gateway)

    with pytest.raises(RuntimeError, match="boom"):
        run(store.get_or_fetch(0))

    assert not store.contains(commits[0].sha)
