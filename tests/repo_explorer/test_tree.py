"""Tests for repo_explorer.services.tree: root bulk load, per-directory loads, merge and refresh."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

from conftest import SAMPLE_TREE, make_dir, make_file

from repo_explorer.models.content import ErrorKind, FetchError, FetchResult, RepositoryIdentity
from repo_explorer.models.node import NodeKind
from repo_explorer.services.explorer import RepositoryExplorer

REPO = RepositoryIdentity("owner", "repo")
OTHER = RepositoryIdentity("owner", "other")


def _paths(nodes) -> list[str]:
    return [n.path for n in nodes]


# --- root bulk load ---


def test_get_children_without_repository_returns_empty(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    """No repository set: no children and no fetch."""
    assert asyncio.run(explorer.get_children()) == []
    fetcher.fetch_recursive.assert_not_called()


def test_root_expansion_loads_once_and_serves_directories_from_cache(
    explorer: RepositoryExplorer, fetcher: MagicMock
) -> None:
    """First root expansion shows a loading node, then the root items; dir1 comes from the bulk load."""

    async def _run() -> None:
        events = []
        explorer.on_change(events.append)
        explorer.set_repository(REPO)

        first = await explorer.get_children()
        assert [n.kind for n in first] == [NodeKind.LOADING]

        await explorer.ensure_root_loaded()
        root = await explorer.get_children()
        assert _paths(root) == ["file1.txt", "dir1"]

        dir1 = explorer.get_node("dir1")
        children = await explorer.get_children(dir1)
        assert _paths(children) == ["dir1/file2.txt"]
        assert dir1.children == ["dir1/file2.txt"]

        fetcher.fetch_recursive.assert_awaited_once_with(REPO, "", 3)
        fetcher.fetch_children.assert_not_called()
        # Repository change, then root load settled.
        assert events == [None, None]

    asyncio.run(_run())


def test_root_load_respects_configured_depth(fetcher: MagicMock) -> None:
    explorer = RepositoryExplorer(fetcher, initial_load_depth=1)
    explorer.set_repository(REPO)
    asyncio.run(explorer.ensure_root_loaded())
    fetcher.fetch_recursive.assert_awaited_once_with(REPO, "", 1)


def test_concurrent_root_expansion_starts_one_load(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    async def _run() -> None:
        explorer.set_repository(REPO)
        results = await asyncio.gather(
            explorer.get_children(), explorer.get_children(), explorer.ensure_root_loaded()
        )
        assert _paths(results[2]) == ["file1.txt", "dir1"]
        fetcher.fetch_recursive.assert_awaited_once()

    asyncio.run(_run())


def test_root_failure_yields_error_node_and_clears_map(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    fetcher.fetch_recursive = AsyncMock(
        return_value=FetchResult.failure(FetchError("Not found", kind=ErrorKind.NOT_FOUND, status=404))
    )

    async def _run() -> None:
        explorer.set_repository(REPO)
        root = await explorer.ensure_root_loaded()
        assert len(root) == 1
        assert root[0].kind is NodeKind.ERROR
        assert root[0].message == "Error: Not found"
        assert explorer.state.get_all_items() == {}
        assert not explorer.state.is_root_loading()

    asyncio.run(_run())


def test_root_fetcher_exception_becomes_error_node(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    fetcher.fetch_recursive = AsyncMock(side_effect=RuntimeError("boom"))

    async def _run() -> None:
        explorer.set_repository(REPO)
        root = await explorer.ensure_root_loaded()
        assert [n.kind for n in root] == [NodeKind.ERROR]
        assert "boom" in root[0].message

    asyncio.run(_run())


def test_root_result_discarded_after_repository_switch(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    """A load started for one repository never populates the state of the next one."""
    gate = asyncio.Event()

    async def slow_recursive(repository, path, max_depth):
        await gate.wait()
        return FetchResult.success(SAMPLE_TREE)

    fetcher.fetch_recursive = AsyncMock(side_effect=slow_recursive)

    async def _run() -> None:
        explorer.set_repository(REPO)
        task = explorer.tree.start_root_load()
        await asyncio.sleep(0)
        explorer.set_repository(OTHER)
        gate.set()
        await task
        assert explorer.state.get_all_items() == {}
        assert explorer.state.get_root_items() is None
        assert not explorer.state.is_root_loading()

    asyncio.run(_run())


def test_root_load_scheduled_before_switch_never_runs(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    """A root load queued for one repository but not yet started is dropped once the repository changes."""

    async def recursive(repository, path, max_depth):
        if repository == REPO:
            return FetchResult.success([make_file("only_in_repo.txt")])
        return FetchResult.success([make_file("only_in_other.txt")])

    fetcher.fetch_recursive = AsyncMock(side_effect=recursive)

    async def _run() -> None:
        explorer.set_repository(REPO)
        assert [n.kind for n in await explorer.get_children()] == [NodeKind.LOADING]
        explorer.set_repository(OTHER)

        root = await explorer.ensure_root_loaded()
        await asyncio.sleep(0)

        assert _paths(root) == ["only_in_other.txt"]
        assert list(explorer.state.get_all_items()) == ["only_in_other.txt"]
        assert _paths(explorer.state.get_root_items()) == ["only_in_other.txt"]
        fetcher.fetch_recursive.assert_awaited_once_with(OTHER, "", 3)

    asyncio.run(_run())


# --- per-directory loads ---


def test_directory_load_scheduled_before_switch_is_dropped(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    """A directory load queued before a repository switch returns nothing and merges nothing."""
    fetcher.fetch_children = AsyncMock(return_value=FetchResult.success([make_file("src/from_repo.py")]))

    async def _run() -> None:
        explorer.set_repository(REPO)
        (src,) = explorer.tree.merge_entries([make_dir("src")])
        task = asyncio.ensure_future(explorer.get_children(src))
        await asyncio.sleep(0)
        explorer.set_repository(OTHER)

        assert await task == []
        assert explorer.get_node("src/from_repo.py") is None
        assert explorer.state.get_all_items() == {}
        assert explorer.state.get_loading_promise("src") is None
        fetcher.fetch_children.assert_not_awaited()

    asyncio.run(_run())


def test_concurrent_directory_expansion_shares_one_fetch(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    """Two expansions of the same unloaded directory trigger exactly one fetch and see the same children."""
    gate = asyncio.Event()

    async def slow_children(repository, path):
        await gate.wait()
        return FetchResult.success([make_file("src/b.py"), make_dir("src/lib"), make_file("src/a.py")])

    fetcher.fetch_children = AsyncMock(side_effect=slow_children)

    async def _run() -> None:
        explorer.set_repository(REPO)
        (src,) = explorer.tree.merge_entries([make_dir("src")])
        tasks = [asyncio.ensure_future(explorer.get_children(src)) for _ in range(2)]
        await asyncio.sleep(0)
        assert explorer.state.get_loading_promise("src") is not None
        gate.set()
        first, second = await asyncio.gather(*tasks)

        assert _paths(first) == ["src/lib", "src/a.py", "src/b.py"]
        assert _paths(second) == _paths(first)
        assert fetcher.fetch_children.await_count == 1
        assert explorer.state.get_loading_promise("src") is None
        assert explorer.get_node("src/a.py").parent_path == "src"

    asyncio.run(_run())


def test_directory_failure_is_not_cached(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    fetcher.fetch_children = AsyncMock(
        side_effect=[
            FetchResult.failure(FetchError("GitHub API error: 500", kind=ErrorKind.TRANSIENT)),
            FetchResult.success([make_file("src/a.py")]),
        ]
    )

    async def _run() -> None:
        explorer.set_repository(REPO)
        (src,) = explorer.tree.merge_entries([make_dir("src")])

        failed = await explorer.get_children(src)
        assert [n.kind for n in failed] == [NodeKind.ERROR]
        assert src.children is None

        loaded = await explorer.get_children(src)
        assert _paths(loaded) == ["src/a.py"]
        assert fetcher.fetch_children.await_count == 2

    asyncio.run(_run())


def test_empty_directory_is_not_fetched_twice(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    async def _run() -> None:
        explorer.set_repository(REPO)
        (empty,) = explorer.tree.merge_entries([make_dir("empty")])
        assert await explorer.get_children(empty) == []
        assert await explorer.get_children(empty) == []
        assert fetcher.fetch_children.await_count == 1

    asyncio.run(_run())


def test_file_node_has_no_children(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    explorer.set_repository(REPO)
    (readme,) = explorer.tree.merge_entries([make_file("README.md")])
    assert asyncio.run(explorer.get_children(readme)) == []
    fetcher.fetch_children.assert_not_called()


# --- merge ---


def test_merge_is_idempotent(explorer: RepositoryExplorer) -> None:
    entries = [make_dir("a"), make_file("a/b.txt")]
    first = explorer.tree.merge_entries(entries)
    second = explorer.tree.merge_entries(entries)
    assert [id(n) for n in first] == [id(n) for n in second]
    assert len(explorer.state.get_all_items()) == 2
    assert explorer.get_node("a/b.txt").parent_path == "a"


def test_merge_links_parent_that_arrives_later_in_batch(explorer: RepositoryExplorer) -> None:
    explorer.tree.merge_entries([make_file("a/b.txt"), make_dir("a")])
    child = explorer.get_node("a/b.txt")
    assert child.parent_path == "a"
    assert explorer.tree.get_parent(child) is explorer.get_node("a")


def test_merge_logs_orphan_without_parent(explorer: RepositoryExplorer, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="repo_explorer.services.tree"):
        (orphan,) = explorer.tree.merge_entries([make_file("x/y.txt")])
    assert orphan.parent_path is None
    assert explorer.tree.get_parent(orphan) is None
    assert "x/y.txt" in caplog.text


def test_find_children_returns_direct_children_directories_first(explorer: RepositoryExplorer) -> None:
    explorer.tree.merge_entries(
        [make_dir("a"), make_file("a/b"), make_dir("a/c"), make_file("a/b/d"), make_file("ab")]
    )
    assert _paths(explorer.tree.find_children("a")) == ["a/c", "a/b"]
    assert _paths(explorer.tree.find_children("")) == ["a", "ab"]


# --- refresh ---


def test_refresh_directory_drops_descendants_and_refetches(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    fetcher.fetch_children = AsyncMock(return_value=FetchResult.success([make_file("dir1/new.txt")]))

    async def _run() -> None:
        explorer.set_repository(REPO)
        await explorer.ensure_root_loaded()
        dir1 = explorer.get_node("dir1")
        await explorer.get_children(dir1)

        events = []
        explorer.on_change(events.append)
        explorer.refresh(dir1)
        assert events == [dir1]
        assert explorer.get_node("dir1/file2.txt") is None
        assert explorer.get_node("file1.txt") is not None

        children = await explorer.get_children(dir1)
        assert _paths(children) == ["dir1/new.txt"]
        fetcher.fetch_children.assert_awaited_once_with(REPO, "dir1")

    asyncio.run(_run())


def test_full_refresh_resets_state_and_keeps_repository(explorer: RepositoryExplorer, fetcher: MagicMock) -> None:
    async def _run() -> None:
        explorer.set_repository(REPO)
        await explorer.ensure_root_loaded()
        explorer.toggle("file1.txt")

        explorer.refresh()
        assert explorer.get_repository() == REPO
        assert explorer.state.get_root_items() is None
        assert explorer.state.get_all_items() == {}
        assert explorer.is_selected("file1.txt")

        await explorer.ensure_root_loaded()
        assert fetcher.fetch_recursive.await_count == 2

    asyncio.run(_run())


def test_direct_children_exclude_grandchildren(explorer: RepositoryExplorer) -> None:
    explorer.tree.merge_entries([make_dir("a"), make_dir("a/b"), make_file("a/b/c"), make_file("a/d")])
    assert sorted(_paths(explorer.tree.find_children("a"))) == ["a/b", "a/d"]
