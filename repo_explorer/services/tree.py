"""Tree materializer: turn flat remote listings into the parent-linked node map.

Two loading strategies feed the same map. The root is filled by one bounded
recursive fetch the first time it is expanded; any directory whose children
are not already known is filled by a single-level fetch, deduplicated through
the state store's pending-load registry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, List, Protocol, Sequence

from repo_explorer.models.content import (
    PATH_SEPARATOR,
    ROOT_PATH,
    ContentEntry,
    FetchError,
    FetchResult,
    RepositoryIdentity,
    is_descendant,
    is_direct_child,
)
from repo_explorer.models.node import TreeNode

from .events import ChangeNotifier
from .state import RepositoryState

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_LOAD_DEPTH = 3


class ContentFetcher(Protocol):
    """Remote listing source. Both calls return a tagged result and never raise."""

    async def fetch_children(self, repository: RepositoryIdentity, path: str) -> FetchResult: ...

    async def fetch_recursive(
        self, repository: RepositoryIdentity, path: str, max_depth: int
    ) -> FetchResult: ...


def _sort_key(node: TreeNode) -> tuple[int, str]:
    """Directories before files, then by name."""
    return (0 if node.is_directory else 1, node.name)


class TreeMaterializer:
    """Serve children from the cache or from a single in-flight fetch per path."""

    def __init__(
        self,
        fetcher: ContentFetcher,
        state: RepositoryState,
        notifier: ChangeNotifier,
        *,
        initial_load_depth: int = DEFAULT_INITIAL_LOAD_DEPTH,
    ) -> None:
        self._fetcher = fetcher
        self._state = state
        self._notifier = notifier
        self.initial_load_depth = initial_load_depth
        self._root_task: asyncio.Task[None] | None = None

    # --- presentation-facing ---

    async def get_children(self, node: TreeNode | None = None) -> List[TreeNode]:
        """Children of node, or of the root when node is None.

        The root answers with a loading placeholder while its bulk load runs in
        the background; a change notification fires when it settles. A failed
        fetch answers with a single error node.
        """
        repository = self._state.get_repository()
        if repository is None:
            logger.debug("get_children called with no repository set")
            return []

        if node is None:
            root_items = self._state.get_root_items()
            if root_items is not None:
                return list(root_items)
            if not self._state.is_root_loading():
                logger.debug("Root not loaded, starting background load")
                self.start_root_load()
            return [TreeNode.loading()]

        if not node.is_directory:
            return []

        path = node.path
        cached = self.find_children(path)
        if cached:
            logger.debug("Found %d cached children for %s", len(cached), path)
            node.children = [c.path for c in cached]
            return cached
        if node.children == []:
            # Fetched before and found empty.
            return []

        pending = self._state.get_loading_promise(path)
        if pending is not None:
            logger.debug("Already loading children for %s, joining pending load", path)
            return await asyncio.shield(pending)

        return await self._load_directory(repository, node)

    def get_parent(self, node: TreeNode) -> TreeNode | None:
        if node.parent_path is None:
            return None
        return self._state.get_item(node.parent_path)

    def refresh(self, node: TreeNode | None = None) -> None:
        """Drop cached data so it is fetched again.

        With no node the whole state is reset (the repository is kept). With a
        directory node only its known descendants, its child cache and its
        pending load are dropped.
        """
        if node is None:
            logger.info("Full refresh of %s", self._state.get_repository())
            self._root_task = None
            self._state.reset_state()
            self._notifier.fire()
            return
        if node.is_directory:
            path = node.path
            items = self._state.get_all_items()
            stale = [p for p in items if is_descendant(p, path)]
            for p in stale:
                self._state.remove_item(p)
            node.children = None
            self._state.delete_loading_promise(path)
            logger.debug("Refreshed %s: dropped %d cached descendants", path, len(stale))
        self._notifier.fire(node)

    def find_children(self, parent_path: str) -> List[TreeNode]:
        """Direct children of parent_path known in the map, directories first."""
        children = [
            item
            for path, item in self._state.get_all_items().items()
            if is_direct_child(path, parent_path)
        ]
        children.sort(key=_sort_key)
        return children

    # --- root bulk strategy ---

    def start_root_load(self) -> "asyncio.Task[None] | None":
        """Start the background root load unless one is running or done."""
        if self._state.is_root_loading() or self._state.get_root_items() is not None:
            logger.debug("Skipping root load: already loading or loaded")
            return self._root_task
        repository = self._state.get_repository()
        if repository is None:
            return None
        # Flag is set before scheduling so a second caller never starts another load.
        self._state.set_root_loading(True)
        self._root_task = asyncio.ensure_future(
            self.load_root(repository, self._state.generation)
        )
        return self._root_task

    async def ensure_root_loaded(self) -> List[TreeNode]:
        """Start or join the root load and return the root items once settled."""
        task = self.start_root_load()
        if task is not None and not task.done():
            await asyncio.shield(task)
        return list(self._state.get_root_items() or [])

    def _is_stale(self, repository: RepositoryIdentity, generation: int) -> bool:
        """True if the state was reset or switched since a load was scheduled."""
        return (
            self._state.generation != generation
            or self._state.get_repository() != repository
        )

    async def load_root(self, repository: RepositoryIdentity, generation: int) -> None:
        """Bulk-load the root of repository.

        generation is the state generation read when the load was scheduled;
        the result is dropped if the state has moved on since then.
        """
        if self._is_stale(repository, generation):
            logger.info("State reset before root load of %s started, skipping", repository)
            return
        logger.info(
            "Loading root of %s (depth %d)", repository, self.initial_load_depth
        )
        try:
            try:
                result = await self._fetcher.fetch_recursive(
                    repository, ROOT_PATH, self.initial_load_depth
                )
            except Exception as e:
                logger.exception("Exception fetching root of %s", repository)
                result = FetchResult.failure(FetchError(message=str(e) or type(e).__name__))
            if self._is_stale(repository, generation):
                logger.info("State reset while loading %s, discarding result", repository)
                return
            if not result.ok:
                error = result.error
                logger.error("Error fetching root of %s: %s", repository, error)
                self._state.set_root_items([TreeNode.failed(error or "Unknown error")])
                self._state.clear_item_map()
                return
            self.merge_entries(result.data)
            root_items = [
                item
                for path, item in self._state.get_all_items().items()
                if PATH_SEPARATOR not in path
            ]
            self._state.set_root_items(root_items)
            logger.info(
                "Mapped %d items, %d at root",
                len(self._state.get_all_items()),
                len(root_items),
            )
        finally:
            if not self._is_stale(repository, generation):
                self._state.set_root_loading(False)
            self._notifier.fire()
            logger.info("Root load of %s finished", repository)

    # --- per-directory strategy ---

    async def _load_directory(
        self, repository: RepositoryIdentity, parent: TreeNode
    ) -> List[TreeNode]:
        path = parent.path
        pending = asyncio.ensure_future(
            self._fetch_directory(repository, parent, self._state.generation)
        )
        # Registered before any await so concurrent callers join this load.
        self._state.set_loading_promise(path, pending)
        return await asyncio.shield(pending)

    async def _fetch_directory(
        self, repository: RepositoryIdentity, parent: TreeNode, generation: int
    ) -> List[TreeNode]:
        path = parent.path
        this_load = asyncio.current_task()
        logger.debug("Fetching children for directory: %s", path)
        try:
            if self._is_stale(repository, generation):
                logger.info("State reset before loading %s, skipping", path)
                return []
            try:
                result = await self._fetcher.fetch_children(repository, path)
            except Exception as e:
                logger.exception("Exception fetching directory %s", path)
                result = FetchResult.failure(FetchError(message=str(e) or type(e).__name__))
            if self._is_stale(repository, generation):
                logger.info("State reset while loading %s, discarding result", path)
                return []
            if not result.ok:
                logger.error("Error fetching directory %s: %s", path, result.error)
                return [TreeNode.failed(result.error or "Unknown error")]
            items = self.merge_entries(result.data, parent)
            items.sort(key=_sort_key)
            parent.children = [item.path for item in items]
            logger.debug("Cached %d children for %s", len(items), path)
            return items
        finally:
            # A refresh may have replaced the registry entry with a newer load.
            if self._state.get_loading_promise(path) is this_load:
                self._state.delete_loading_promise(path)
            logger.debug("Finished loading children for %s", path)

    # --- merge ---

    def merge_entries(
        self, entries: Sequence[ContentEntry], parent: TreeNode | None = None
    ) -> List[TreeNode]:
        """Insert entries into the map; return one node per entry.

        Existing nodes are returned as they are, parent link untouched. New
        nodes link to the explicit parent, or to the node at their parent path
        when it is already mapped. After the batch, nodes whose parent arrived
        later in the same batch are linked; what is still unlinked is logged.
        """
        nodes: List[TreeNode] = []
        created: List[TreeNode] = []
        for entry in entries:
            existing = self._state.get_item(entry.path)
            if existing is not None:
                nodes.append(existing)
                continue
            parent_path = None
            if parent is not None:
                parent_path = parent.path
            elif entry.parent_path is not None and self._state.get_item(entry.parent_path) is not None:
                parent_path = entry.parent_path
            node = TreeNode(entry, parent_path=parent_path)
            self._state.map_item(node)
            nodes.append(node)
            created.append(node)
        self._link_orphans(created)
        return nodes

    def _link_orphans(self, created: "Iterable[TreeNode]") -> None:
        for node in created:
            if node.parent_path is not None or node.entry is None:
                continue
            expected = node.entry.parent_path
            if expected is None:
                continue
            if self._state.get_item(expected) is not None:
                node.parent_path = expected
            else:
                logger.warning("Parent %r of %r not loaded; node left unlinked", expected, node.path)
