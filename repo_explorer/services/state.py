"""Repository state store: the one context object every explorer component shares.

Holds the current repository identity, the path -> node arena, the root list
(None = not loaded yet), the root-loading flag and the registry of in-flight
directory loads. Only the tree materializer writes the map and the registry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List

from repo_explorer.models.content import RepositoryIdentity
from repo_explorer.models.node import TreeNode

logger = logging.getLogger(__name__)


class RepositoryState:
    """Single-repository-at-a-time explorer state."""

    def __init__(self) -> None:
        self._repository: RepositoryIdentity | None = None
        self._root_items: List[TreeNode] | None = None
        self._root_loading = False
        self._items: Dict[str, TreeNode] = {}
        self._loading: Dict[str, asyncio.Future[List[TreeNode]]] = {}
        self._repository_listeners: List[Callable[[], None]] = []
        self._generation = 0

    @property
    def generation(self) -> int:
        """Incremented on every reset; loads started before a reset compare against it."""
        return self._generation

    # --- repository ---

    def get_repository(self) -> RepositoryIdentity | None:
        return self._repository

    def set_repository(self, repository: RepositoryIdentity | None) -> bool:
        """Switch repository; return True if it changed and state was reset.

        Setting the current repository again is a no-op. On a real change the
        derived state is reset and repository-change listeners (the selection
        engine clearing itself) are called.
        """
        if repository == self._repository:
            logger.debug("Repository %s already current, keeping state", repository)
            return False
        logger.debug("Setting repository state: %s -> %s", self._repository, repository)
        self._repository = repository
        self.reset_state()
        for listener in list(self._repository_listeners):
            listener()
        return True

    def add_repository_listener(self, listener: Callable[[], None]) -> None:
        """Call listener after every effective repository change."""
        self._repository_listeners.append(listener)

    # --- root ---

    def get_root_items(self) -> List[TreeNode] | None:
        return self._root_items

    def set_root_items(self, items: List[TreeNode] | None) -> None:
        logger.debug("Setting root items: %s", "unloaded" if items is None else len(items))
        self._root_items = list(items) if items is not None else None

    def is_root_loading(self) -> bool:
        return self._root_loading

    def set_root_loading(self, loading: bool) -> None:
        if loading == self._root_loading:
            return
        logger.debug("Setting root loading state to: %s", loading)
        self._root_loading = loading

    # --- item map ---

    def map_item(self, node: TreeNode) -> None:
        self._items[node.path] = node

    def get_item(self, path: str) -> TreeNode | None:
        return self._items.get(path)

    def remove_item(self, path: str) -> TreeNode | None:
        return self._items.pop(path, None)

    def get_all_items(self) -> Dict[str, TreeNode]:
        """The live map, not a copy. Do not mutate while a writer is active."""
        return self._items

    def clear_item_map(self) -> None:
        logger.debug("Clearing item map (%d items)", len(self._items))
        self._items.clear()

    # --- pending directory loads ---

    def set_loading_promise(self, path: str, pending: asyncio.Future[List[TreeNode]]) -> None:
        self._loading[path] = pending

    def get_loading_promise(self, path: str) -> asyncio.Future[List[TreeNode]] | None:
        return self._loading.get(path)

    def delete_loading_promise(self, path: str) -> None:
        self._loading.pop(path, None)

    def clear_loading_promises(self) -> None:
        self._loading.clear()

    def reset_state(self) -> None:
        """Clear root list, loading flag, item map and pending loads. Keeps the repository."""
        logger.debug("Resetting explorer state")
        self._generation += 1
        self._root_items = None
        self._root_loading = False
        self.clear_item_map()
        self.clear_loading_promises()
