"""Explorer core: state store, tree materializer, selection engine, change notifier."""

from __future__ import annotations

from .events import ChangeNotifier
from .explorer import NoRepositoryError, RepositoryExplorer
from .selection import SelectionEngine
from .state import RepositoryState
from .tree import ContentFetcher, TreeMaterializer

__all__ = [
    "ChangeNotifier",
    "ContentFetcher",
    "NoRepositoryError",
    "RepositoryExplorer",
    "RepositoryState",
    "SelectionEngine",
    "TreeMaterializer",
]
