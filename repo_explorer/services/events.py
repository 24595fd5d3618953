"""Change notifier shared by the tree materializer and the selection engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, List

if TYPE_CHECKING:
    from repo_explorer.models.node import TreeNode

logger = logging.getLogger(__name__)

ChangeListener = Callable[["TreeNode | None"], None]


class ChangeNotifier:
    """Observer list. fire(None) means "everything may have changed"."""

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register listener; return a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def fire(self, node: TreeNode | None = None) -> None:
        # Copy so a listener may unsubscribe while being notified.
        for listener in list(self._listeners):
            try:
                listener(node)
            except Exception:
                logger.exception("Change listener %r failed", listener)
