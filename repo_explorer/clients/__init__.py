"""External collaborators: GitHub content fetcher and file downloader."""

from __future__ import annotations

from .downloader import Downloader, DownloadResult
from .github_client import GitHubClientError, GitHubContentFetcher, parse_repository_url

__all__ = [
    "Downloader",
    "DownloadResult",
    "GitHubClientError",
    "GitHubContentFetcher",
    "parse_repository_url",
]
