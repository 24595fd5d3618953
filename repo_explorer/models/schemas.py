"""Pydantic schemas for the explorer API: requests, responses, and error body."""

from typing import List, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class RepositoryRequest(BaseModel):
    """Body for PUT /repository: a GitHub URL, or owner and name (and optional branch)."""

    url: str | None = Field(None, description="GitHub repository URL, e.g. https://github.com/owner/repo")
    owner: str | None = None
    name: str | None = None
    branch: str | None = None

    @field_validator("url", "owner", "name", "branch")
    @classmethod
    def strip_blank(cls, v: str | None) -> str | None:
        """Treat blank strings as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def url_or_owner_and_name(self) -> "RepositoryRequest":
        """Require either url or both owner and name so validation returns a clear error."""
        if not self.url and not (self.owner and self.name):
            raise ValueError("url, or owner and name, is required")
        return self


class RepositoryResponse(BaseModel):
    owner: str
    name: str
    branch: str | None = None
    changed: bool = Field(False, description="False when the repository was already current")


class NodeResponse(BaseModel):
    """One tree node with its decoration for the current selection."""

    path: str
    name: str
    kind: str = Field(..., description="file | dir | symlink | submodule | loading | error")
    is_directory: bool
    selected: bool
    label: str
    description: str | None = None
    tooltip: str
    icon: str
    checked: bool | None = None
    message: str | None = None


class TreeResponse(BaseModel):
    path: str
    loading: bool = Field(..., description="True while the root is still being fetched")
    children: List[NodeResponse]


class RefreshRequest(BaseModel):
    path: str | None = Field(None, description="Directory to refresh; omit for a full refresh")


class ToggleRequest(BaseModel):
    path: str = Field(..., description="Path to toggle; empty string means the whole tree")
    recursive: bool = False


class SelectionResponse(BaseModel):
    selected: List[str]
    count: int


class DownloadRequest(BaseModel):
    destination: str | None = Field(None, description="Local directory; defaults to DOWNLOAD_DIR")


class DownloadItem(BaseModel):
    path: str
    success: bool
    error: str | None = None


class DownloadResponse(BaseModel):
    succeeded: int
    failed: int
    results: List[DownloadItem]


class ErrorResponse(BaseModel):
    """Error response body: status and message."""

    status: Literal["error"] = Field(..., description="Always 'error' for error responses")
    message: str = Field(..., description="Human-readable error message")
