"""Remote listing records and the tagged result returned by every content fetch."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List

# Hierarchy separator used in every repository path; root entries contain none.
PATH_SEPARATOR = "/"
# The root of the tree is addressed by the empty path.
ROOT_PATH = ""


class EntryKind(str, Enum):
    """Kind of a remote listing record, using GitHub's contents API names."""

    FILE = "file"
    DIRECTORY = "dir"
    SYMLINK = "symlink"
    SUBMODULE = "submodule"

    @property
    def is_directory(self) -> bool:
        return self is EntryKind.DIRECTORY


class ErrorKind(str, Enum):
    """Classification attached to a failed fetch."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    MALFORMED = "malformed"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RepositoryIdentity:
    """Owner, name and optional branch of one repository. Compared field by field."""

    owner: str
    name: str
    branch: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        if self.branch:
            return f"{self.full_name} ({self.branch})"
        return self.full_name


@dataclass
class ContentEntry:
    """One remote listing record keyed by its repository path.

    At most one of download_url and content is populated: the contents API
    gives a download reference, a single-file response may carry inline
    base64 content instead.
    """

    path: str
    name: str
    kind: EntryKind
    size: int = 0
    sha: str | None = None
    download_url: str | None = None
    content: str | None = None
    encoding: str | None = None

    def __post_init__(self) -> None:
        if self.download_url and self.content:
            raise ValueError(
                f"Entry {self.path!r} has both a download reference and inline content"
            )

    @property
    def is_directory(self) -> bool:
        return self.kind.is_directory

    @property
    def depth(self) -> int:
        """Number of path segments: 1 for root entries."""
        return path_depth(self.path)

    @property
    def parent_path(self) -> str | None:
        """Path before the last separator, or None for root entries."""
        return parent_path_of(self.path)

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "ContentEntry":
        """Build an entry from one GitHub contents API item.

        Raises:
            ValueError: If path or type is missing or the type is unknown.
        """
        path = item.get("path")
        raw_kind = item.get("type")
        if not isinstance(path, str) or not path:
            raise ValueError("Content item has no path")
        try:
            kind = EntryKind(raw_kind)
        except ValueError as e:
            raise ValueError(f"Content item {path!r} has unknown type {raw_kind!r}") from e
        name = item.get("name")
        if not isinstance(name, str) or not name:
            name = path.rsplit(PATH_SEPARATOR, 1)[-1]
        size = item.get("size")
        content = item.get("content") if isinstance(item.get("content"), str) else None
        download_url = item.get("download_url") if isinstance(item.get("download_url"), str) else None
        if content and download_url:
            # Single-file responses carry both; the inline copy saves a request.
            download_url = None
        return cls(
            path=path,
            name=name,
            kind=kind,
            size=size if isinstance(size, int) else 0,
            sha=item.get("sha") if isinstance(item.get("sha"), str) else None,
            download_url=download_url,
            content=content or None,
            encoding=item.get("encoding") if isinstance(item.get("encoding"), str) else None,
        )


@dataclass(frozen=True)
class RateLimit:
    """Last rate-limit figures reported by the API (reset is a unix timestamp)."""

    limit: int
    remaining: int
    reset: int


@dataclass(frozen=True)
class FetchError:
    """Human-readable failure of a fetch with an optional HTTP status."""

    message: str
    kind: ErrorKind = ErrorKind.UNKNOWN
    status: int | None = None
    is_transient: bool = False

    def __str__(self) -> str:
        return self.message


@dataclass
class FetchResult:
    """Tagged success/failure of a Content Fetcher call. Never raised."""

    ok: bool
    data: List[ContentEntry] = field(default_factory=list)
    error: FetchError | None = None

    @classmethod
    def success(cls, entries: List[ContentEntry]) -> "FetchResult":
        return cls(ok=True, data=list(entries))

    @classmethod
    def failure(cls, error: FetchError) -> "FetchResult":
        return cls(ok=False, error=error)


def path_depth(path: str) -> int:
    """Hierarchy depth of a path: separators + 1, and 0 for the root path."""
    if path == ROOT_PATH:
        return 0
    return path.count(PATH_SEPARATOR) + 1


def parent_path_of(path: str) -> str | None:
    if PATH_SEPARATOR not in path:
        return None
    return path.rsplit(PATH_SEPARATOR, 1)[0]


def is_descendant(path: str, ancestor: str) -> bool:
    """True if path lies strictly below ancestor (any depth)."""
    if path == ancestor:
        return False
    if ancestor == ROOT_PATH:
        return True
    return path.startswith(ancestor + PATH_SEPARATOR)


def is_direct_child(path: str, parent: str) -> bool:
    """True if path is exactly one level below parent."""
    return is_descendant(path, parent) and path_depth(path) == path_depth(parent) + 1
