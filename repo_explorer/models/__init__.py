"""Domain types: repository identity, content entries, fetch results, tree nodes."""

from __future__ import annotations

from .content import (
    ContentEntry,
    EntryKind,
    ErrorKind,
    FetchError,
    FetchResult,
    RateLimit,
    RepositoryIdentity,
)
from .node import NodeDecoration, NodeKind, TreeNode

__all__ = [
    "ContentEntry",
    "EntryKind",
    "ErrorKind",
    "FetchError",
    "FetchResult",
    "NodeDecoration",
    "NodeKind",
    "RateLimit",
    "RepositoryIdentity",
    "TreeNode",
]
