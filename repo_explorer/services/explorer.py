"""Explorer facade: the operations a presentation layer calls, over one shared context."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Protocol, Sequence

from repo_explorer.models.content import ContentEntry, RepositoryIdentity
from repo_explorer.models.node import NodeDecoration, TreeNode

from .events import ChangeNotifier
from .selection import SelectionEngine
from .state import RepositoryState
from .tree import DEFAULT_INITIAL_LOAD_DEPTH, ContentFetcher, TreeMaterializer

if TYPE_CHECKING:
    from repo_explorer.clients.downloader import DownloadResult

logger = logging.getLogger(__name__)


class BatchDownloader(Protocol):
    async def download_many(
        self,
        entries: Sequence[ContentEntry],
        destination_root: str | Path,
        repository: RepositoryIdentity,
    ) -> List["DownloadResult"]: ...


class NoRepositoryError(Exception):
    """Raised when an operation needs a repository and none is set."""


class RepositoryExplorer:
    """Wires the state store, notifier, selection engine and tree materializer together.

    Construct one per session (or per test) instead of sharing module globals.
    """

    def __init__(
        self,
        fetcher: ContentFetcher,
        *,
        downloader: BatchDownloader | None = None,
        initial_load_depth: int = DEFAULT_INITIAL_LOAD_DEPTH,
    ) -> None:
        self.state = RepositoryState()
        self.notifier = ChangeNotifier()
        self.selection = SelectionEngine(self.state, self.notifier)
        self.tree = TreeMaterializer(
            fetcher, self.state, self.notifier, initial_load_depth=initial_load_depth
        )
        self._downloader = downloader

    # --- repository ---

    def set_repository(self, repository: RepositoryIdentity) -> bool:
        """Switch repository. Returns False (and does nothing) if it is already current."""
        changed = self.state.set_repository(repository)
        if changed:
            logger.info("Repository set to %s", repository)
            self.notifier.fire()
        return changed

    def get_repository(self) -> RepositoryIdentity | None:
        return self.state.get_repository()

    def refresh(self, node: TreeNode | None = None) -> None:
        self.tree.refresh(node)

    def on_change(self, listener: Callable[[TreeNode | None], None]) -> Callable[[], None]:
        return self.notifier.subscribe(listener)

    # --- tree ---

    async def get_children(self, node: TreeNode | None = None) -> List[TreeNode]:
        return await self.tree.get_children(node)

    def get_parent(self, node: TreeNode) -> TreeNode | None:
        return self.tree.get_parent(node)

    def get_node(self, path: str) -> TreeNode | None:
        return self.state.get_item(path)

    async def ensure_root_loaded(self) -> List[TreeNode]:
        if self.state.get_repository() is None:
            return []
        return await self.tree.ensure_root_loaded()

    def decorate(self, node: TreeNode) -> NodeDecoration:
        return node.decorate(self.selection.is_selected(node.path))

    # --- selection ---

    def toggle(self, path: str) -> None:
        self.selection.toggle(path)

    def toggle_recursive(self, path: str) -> bool:
        return self.selection.toggle_recursive(path)

    def handle_checkbox_change(self, node: TreeNode) -> None:
        """Directories toggle with their known subtree; everything else toggles alone."""
        if node.is_placeholder:
            logger.warning("Ignoring checkbox change on placeholder %r", node)
            return
        if node.is_directory:
            logger.info("Directory checkbox toggled: %s", node.path)
            self.selection.toggle_recursive(node.path)
        else:
            self.selection.toggle(node.path)

    def is_selected(self, path: str) -> bool:
        return self.selection.is_selected(path)

    def get_selected(self) -> List[str]:
        return self.selection.list_selected()

    def clear_selection(self) -> None:
        self.selection.clear()

    def resolve_selected_entries(self, paths: Sequence[str]) -> List[ContentEntry]:
        """Entries for the given paths that are loaded; unknown paths are skipped."""
        entries: List[ContentEntry] = []
        for path in paths:
            node = self.state.get_item(path)
            if node is not None and node.entry is not None:
                entries.append(node.entry)
        logger.debug("Resolved %d of %d selected paths", len(entries), len(paths))
        return entries

    async def download_selected(self, destination: str | Path) -> List["DownloadResult"]:
        """Download every selected, loaded entry under destination.

        Raises:
            NoRepositoryError: If no repository is set.
            RuntimeError: If the explorer was built without a downloader.
        """
        repository = self.state.get_repository()
        if repository is None:
            raise NoRepositoryError("No repository is currently loaded")
        if self._downloader is None:
            raise RuntimeError("Explorer has no downloader configured")
        entries = self.resolve_selected_entries(sorted(self.selection.list_selected()))
        if not entries:
            return []
        return await self._downloader.download_many(entries, destination, repository)
