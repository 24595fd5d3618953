"""Selection engine: the set of selected paths and its toggle operations."""

from __future__ import annotations

import logging
from typing import Iterable, List

from repo_explorer.models.content import ROOT_PATH, is_descendant

from .events import ChangeNotifier
from .state import RepositoryState

logger = logging.getLogger(__name__)


class SelectionEngine:
    """Selected paths, decoupled from load state.

    A path may be selected without being loaded. Recursive toggles only see
    nodes currently in the state store's map and never trigger fetches.
    """

    def __init__(self, state: RepositoryState, notifier: ChangeNotifier) -> None:
        self._state = state
        self._notifier = notifier
        self._selected: set[str] = set()
        state.add_repository_listener(self._drop_all)

    def toggle(self, path: str) -> None:
        """Flip membership of exactly this path. Always notifies."""
        if path in self._selected:
            self._selected.discard(path)
        else:
            self._selected.add(path)
        self._notifier.fire()

    def toggle_recursive(self, path: str) -> bool:
        """Apply one target state to path and every known descendant.

        For a regular path the target is the opposite of its current state.
        For the root path the target is "unselect all" when every known path is
        already selected and "select all" otherwise.

        Returns:
            True if any membership changed (and exactly one notification fired).
        """
        known = self._state.get_all_items()
        if path == ROOT_PATH:
            affected = [p for p in known if p != ROOT_PATH]
            should_select = not all(p in self._selected for p in affected)
        else:
            affected = [path]
            affected.extend(p for p in known if is_descendant(p, path))
            should_select = path not in self._selected
        logger.debug(
            "Toggling recursive selection for %r: %d paths, target %s",
            path,
            len(affected),
            "selected" if should_select else "unselected",
        )

        changed = False
        for p in affected:
            if should_select and p not in self._selected:
                self._selected.add(p)
                changed = True
            elif not should_select and p in self._selected:
                self._selected.discard(p)
                changed = True

        if changed:
            self._notifier.fire()
        else:
            logger.debug("Recursive toggle of %r changed nothing", path)
        return changed

    def is_selected(self, path: str) -> bool:
        return path in self._selected

    def list_selected(self) -> List[str]:
        return list(self._selected)

    def clear(self) -> None:
        """Empty the selection; notifies only if something was selected."""
        if not self._selected:
            return
        self._selected.clear()
        self._notifier.fire()

    def _drop_all(self) -> None:
        """Empty the selection silently; the repository switch sends the one notification."""
        if self._selected:
            logger.debug("Repository changed, dropping %d selected paths", len(self._selected))
        self._selected.clear()

    def select_many(self, paths: Iterable[str]) -> None:
        """Add paths not already present; one notification if any were added."""
        added = 0
        for p in paths:
            if p not in self._selected:
                self._selected.add(p)
                added += 1
        if added:
            logger.debug("Selected %d paths programmatically", added)
            self._notifier.fire()
