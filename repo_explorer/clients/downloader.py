"""Batch download of selected entries into a local directory (async, bounded concurrency)."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Sequence

import httpx

from repo_explorer.models.content import ContentEntry, EntryKind, RepositoryIdentity

from .github_client import DEFAULT_TIMEOUT, USER_AGENT, GitHubClientError, GitHubContentFetcher

logger = logging.getLogger(__name__)

# Default concurrency for parallel file downloads
DEFAULT_MAX_CONCURRENT_DOWNLOADS = 3
_CHUNK_SIZE = 64 * 1024


@dataclass
class DownloadResult:
    """Outcome for one entry: success, or the error message that stopped it."""

    entry: ContentEntry
    success: bool
    error: str | None = None


class DownloadError(Exception):
    """Raised for a single entry that cannot be written; becomes a failed DownloadResult."""


def _target_path(destination_root: Path, entry: ContentEntry) -> Path:
    target = (destination_root / entry.path).resolve()
    if target != destination_root and destination_root not in target.parents:
        raise DownloadError(f"Refusing to write outside {destination_root}: {entry.path}")
    return target


def _decode_inline(entry: ContentEntry) -> bytes:
    """Decode inline content; GitHub wraps base64 at 60 columns, so whitespace is stripped."""
    raw = entry.content or ""
    if entry.encoding and entry.encoding != "base64":
        return raw.encode("utf-8")
    cleaned = "".join(raw.split())
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DownloadError(f"Invalid base64 content for {entry.path}") from e


class Downloader:
    """Writes files and directories for a list of entries under one destination root."""

    def __init__(
        self,
        fetcher: GitHubContentFetcher,
        *,
        github_token: str | None = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._token = (github_token or "").strip() or None
        self._max_concurrency = max(1, max_concurrency)
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Any, fetcher: GitHubContentFetcher) -> "Downloader":
        return cls(
            fetcher,
            github_token=settings.github_token(),
            max_concurrency=settings.MAX_CONCURRENT_DOWNLOADS,
            timeout=settings.REQUEST_TIMEOUT,
        )

    def _client(self) -> httpx.AsyncClient:
        headers = {"User-Agent": USER_AGENT}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return httpx.AsyncClient(
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
            follow_redirects=True,
        )

    async def download_many(
        self,
        entries: Sequence[ContentEntry],
        destination_root: str | Path,
        repository: RepositoryIdentity,
    ) -> List[DownloadResult]:
        """Create directories, then download files in parallel.

        Returns:
            One DownloadResult per entry: directories first, then files, each in input order.
        """
        if not entries:
            return []
        root = Path(destination_root).resolve()
        results: List[DownloadResult] = []

        for entry in entries:
            if not entry.is_directory:
                continue
            try:
                _target_path(root, entry).mkdir(parents=True, exist_ok=True)
                results.append(DownloadResult(entry=entry, success=True))
            except (DownloadError, OSError) as e:
                logger.error("Failed to create directory %s: %s", entry.path, e)
                results.append(DownloadResult(entry=entry, success=False, error=str(e)))

        files = [e for e in entries if not e.is_directory]
        if not files:
            return results

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def download_one(client: httpx.AsyncClient, entry: ContentEntry) -> DownloadResult:
            async with semaphore:
                try:
                    await self._download_file(client, root, entry, repository)
                    logger.debug("Downloaded %s", entry.path)
                    return DownloadResult(entry=entry, success=True)
                except (DownloadError, GitHubClientError, httpx.HTTPError, OSError) as e:
                    message = getattr(e, "message", None) or str(e) or type(e).__name__
                    logger.error("Failed to download %s: %s", entry.path, message)
                    return DownloadResult(entry=entry, success=False, error=message)

        async with self._client() as client:
            results.extend(await asyncio.gather(*[download_one(client, e) for e in files]))
        logger.info(
            "Downloaded %d/%d entries of %s into %s",
            sum(1 for r in results if r.success),
            len(results),
            repository,
            root,
        )
        return results

    async def _download_file(
        self,
        client: httpx.AsyncClient,
        root: Path,
        entry: ContentEntry,
        repository: RepositoryIdentity,
    ) -> None:
        if entry.kind is not EntryKind.FILE:
            raise DownloadError(f"Cannot download {entry.kind.value} entry {entry.path}")
        target = _target_path(root, entry)
        if not entry.content and not entry.download_url:
            # Bulk tree listings may lack both; ask the contents API for this path.
            entry = await self._fetcher.fetch_entry(repository, entry.path)
            if not entry.content and not entry.download_url:
                raise DownloadError(f"No content available for {entry.path}")
        target.parent.mkdir(parents=True, exist_ok=True)

        if entry.content:
            target.write_bytes(_decode_inline(entry))
            return

        try:
            async with client.stream("GET", entry.download_url) as response:
                if response.status_code != 200:
                    raise DownloadError(
                        f"Failed to download file: {response.status_code}"
                    )
                with open(target, "wb") as f:
                    async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                        f.write(chunk)
        except BaseException:
            target.unlink(missing_ok=True)
            raise
