"""Tree nodes held in the path-keyed arena, plus the synthetic loading and error nodes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List

from .content import ContentEntry, EntryKind, FetchError

LOADING_PATH = "::loading"
ERROR_PATH = "::error"

_SIZE_UNITS = ("KB", "MB", "GB")


class NodeKind(str, Enum):
    ENTRY = "entry"
    LOADING = "loading"
    ERROR = "error"


@dataclass(frozen=True)
class NodeDecoration:
    """What a presentation layer needs to draw one node."""

    label: str
    description: str | None
    tooltip: str
    icon: str
    checked: bool | None
    collapsible: bool
    context_value: str


def format_size(size: int) -> str:
    """Human-readable byte count: 512 B, 1.5 KB, 2.0 MB, ..."""
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in _SIZE_UNITS:
        value /= 1024
        if value < 1024 or unit == _SIZE_UNITS[-1]:
            return f"{value:.1f} {unit}"
    return f"{size} B"


class TreeNode:
    """One cached node. The state store's map owns it; links are stored as paths.

    parent_path is the path of the parent node when it was resolved at merge
    time, None for root entries and unresolved orphans. children is None until
    the node's child list has been cached, then a list of child paths.
    """

    def __init__(
        self,
        entry: ContentEntry | None,
        *,
        parent_path: str | None = None,
        kind: NodeKind = NodeKind.ENTRY,
        message: str | None = None,
        error: FetchError | None = None,
    ) -> None:
        self.entry = entry
        self.kind = kind
        self.parent_path = parent_path
        self.children: List[str] | None = None
        self.message = message
        self.error = error

    @classmethod
    def loading(cls) -> "TreeNode":
        return cls(None, kind=NodeKind.LOADING, message="Loading...")

    @classmethod
    def failed(cls, error: FetchError | str) -> "TreeNode":
        if isinstance(error, str):
            error = FetchError(message=error)
        return cls(None, kind=NodeKind.ERROR, message=f"Error: {error.message}", error=error)

    @property
    def path(self) -> str:
        if self.entry is not None:
            return self.entry.path
        return ERROR_PATH if self.kind is NodeKind.ERROR else LOADING_PATH

    @property
    def name(self) -> str:
        if self.entry is not None:
            return self.entry.name
        return self.message or ""

    @property
    def is_placeholder(self) -> bool:
        return self.kind is not NodeKind.ENTRY

    @property
    def is_directory(self) -> bool:
        return self.entry is not None and self.entry.is_directory

    def decorate(self, selected: bool) -> NodeDecoration:
        """Decoration for this node given its selection state."""
        if self.entry is None:
            icon = "error" if self.kind is NodeKind.ERROR else "loading~spin"
            return NodeDecoration(
                label=self.message or "",
                description=None,
                tooltip=self.message or "",
                icon=icon,
                checked=None,
                collapsible=False,
                context_value=self.kind.value,
            )
        entry = self.entry
        if entry.is_directory:
            icon = "folder-active" if selected else "folder"
        else:
            icon = "check" if selected else "file"
        description = None
        if entry.kind is EntryKind.FILE and entry.size:
            description = format_size(entry.size)
        return NodeDecoration(
            label=entry.name,
            description=description,
            tooltip=entry.path,
            icon=icon,
            checked=selected,
            collapsible=entry.is_directory,
            context_value="directory" if entry.is_directory else "file",
        )

    def __repr__(self) -> str:
        return f"TreeNode(path={self.path!r}, kind={self.kind.value})"
