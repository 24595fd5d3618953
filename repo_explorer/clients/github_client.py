"""GitHub API client: list repository contents one level at a time or recursively.

Public fetch methods never raise. Every HTTP, network, circuit or payload
problem is turned into a FetchResult failure carrying a FetchError.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, List
from urllib.parse import quote

import httpx
from circuitbreaker import CircuitBreakerError, circuit
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from repo_explorer.models.content import (
    PATH_SEPARATOR,
    ContentEntry,
    EntryKind,
    ErrorKind,
    FetchError,
    FetchResult,
    RateLimit,
    RepositoryIdentity,
    path_depth,
)

logger = logging.getLogger(__name__)

# Default timeout for GitHub API requests
DEFAULT_TIMEOUT = 30.0
# Retry: 3 attempts, exponential backoff 1–60s with jitter
RETRY_ATTEMPTS = 3
RETRY_MIN_WAIT = 1
RETRY_MAX_WAIT = 60

GITHUB_API_BASE = "https://api.github.com"
GITHUB_RAW_BASE = "https://raw.githubusercontent.com"
USER_AGENT = "repo-explorer"

# Git tree item mode for symbolic links.
_SYMLINK_MODE = "120000"


class GitHubClientError(Exception):
    """Raised inside the client for HTTP, network and payload errors.

    is_transient: True for errors that may succeed on retry (rate limit, timeout, 5xx).
    """

    def __init__(
        self,
        message: str,
        is_transient: bool = False,
        *,
        status: int | None = None,
        kind: ErrorKind = ErrorKind.UNKNOWN,
    ) -> None:
        self.message = message
        self.is_transient = is_transient
        self.status = status
        self.kind = kind
        super().__init__(message)

    def to_fetch_error(self) -> FetchError:
        return FetchError(
            message=self.message,
            kind=self.kind,
            status=self.status,
            is_transient=self.is_transient,
        )


def _is_github_transient(exc: BaseException) -> bool:
    """Return True if the exception is a retryable GitHub error.

    Rate-limit errors are transient but not retried: the limit only resets later.
    """
    return (
        isinstance(exc, GitHubClientError)
        and getattr(exc, "is_transient", False)
        and exc.kind is not ErrorKind.RATE_LIMITED
    )


def _counts_as_circuit_failure(thrown_type: type, thrown_value: BaseException) -> bool:
    """Only retryable errors open the circuit; a 404 or a spent rate limit is not an outage."""
    return _is_github_transient(thrown_value)


def parse_repository_url(url: str) -> RepositoryIdentity | None:
    """Extract owner, name and optional branch from a GitHub repository URL.

    Supports:
        https://github.com/owner/repo
        github.com/owner/repo.git
        https://www.github.com/owner/repo/tree/branch

    Returns:
        RepositoryIdentity, or None if the URL is not a GitHub repository URL.
    """
    if not url or not isinstance(url, str):
        return None
    clean = re.sub(r"^(https?://)?(www\.)?", "", url.strip(), flags=re.IGNORECASE)
    if not clean.lower().startswith("github.com/"):
        return None
    parts = clean[len("github.com/"):].split("/")
    if len(parts) < 2:
        return None
    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not owner or not name:
        return None
    branch = None
    if len(parts) > 3 and parts[2] == "tree" and parts[3]:
        branch = parts[3]
    return RepositoryIdentity(owner=owner, name=name, branch=branch)


def _parse_rate_limit(headers: httpx.Headers) -> RateLimit | None:
    limit = headers.get("x-ratelimit-limit")
    remaining = headers.get("x-ratelimit-remaining")
    reset = headers.get("x-ratelimit-reset")
    if not (limit and remaining and reset):
        return None
    try:
        return RateLimit(limit=int(limit), remaining=int(remaining), reset=int(reset))
    except ValueError:
        return None


def _error_for_response(response: httpx.Response) -> GitHubClientError:
    """Classify a non-200 response.

    Why: Callers show one message per failed subtree and need to know whether a retry may help.
    What: 401 unauthorized, 403/429 rate limit, 404 not found, 5xx transient, else permanent.
    """
    status = response.status_code
    if status == 401:
        return GitHubClientError(
            "GitHub authentication failed (check GITHUB_TOKEN)",
            is_transient=False,
            status=status,
            kind=ErrorKind.UNAUTHORIZED,
        )
    if status == 429 or (status == 403 and response.headers.get("x-ratelimit-remaining") == "0"):
        reset = response.headers.get("x-ratelimit-reset")
        when = ""
        if reset and reset.isdigit():
            when = f". Reset at {time.strftime('%H:%M:%S', time.localtime(int(reset)))}"
        return GitHubClientError(
            f"GitHub API rate limit exceeded{when}",
            is_transient=True,
            status=status,
            kind=ErrorKind.RATE_LIMITED,
        )
    if status == 403:
        return GitHubClientError(
            "GitHub API rate limit or access denied",
            is_transient=True,
            status=status,
            kind=ErrorKind.RATE_LIMITED,
        )
    if status == 404:
        return GitHubClientError(
            "Not found: repository, branch or path does not exist or is private",
            is_transient=False,
            status=status,
            kind=ErrorKind.NOT_FOUND,
        )
    detail = response.text[:200]
    try:
        body = response.json()
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            detail = body["message"]
    except ValueError:
        pass
    if status >= 500:
        return GitHubClientError(
            f"GitHub API error: {status} {detail}",
            is_transient=True,
            status=status,
            kind=ErrorKind.TRANSIENT,
        )
    return GitHubClientError(
        f"GitHub API error: {status} {detail}",
        is_transient=False,
        status=status,
        kind=ErrorKind.UNKNOWN,
    )


def _tree_item_kind(item: dict[str, Any]) -> EntryKind:
    item_type = item.get("type")
    if item_type == "tree":
        return EntryKind.DIRECTORY
    if item_type == "commit":
        return EntryKind.SUBMODULE
    if item_type == "blob":
        return EntryKind.SYMLINK if item.get("mode") == _SYMLINK_MODE else EntryKind.FILE
    raise ValueError(f"Tree item has unknown type {item_type!r}")


class GitHubContentFetcher:
    """Content fetcher backed by the GitHub REST API (contents and git trees)."""

    def __init__(
        self,
        *,
        github_token: str | None = None,
        api_base: str = GITHUB_API_BASE,
        raw_base: str = GITHUB_RAW_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = (github_token or "").strip() or None
        self._api_base = api_base.rstrip("/")
        self._raw_base = raw_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._rate_limit: RateLimit | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> "GitHubContentFetcher":
        return cls(
            github_token=settings.github_token(),
            api_base=settings.GITHUB_API_BASE,
            timeout=settings.REQUEST_TIMEOUT,
        )

    @property
    def rate_limit(self) -> RateLimit | None:
        """Last rate-limit figures seen in a response, if any."""
        return self._rate_limit

    def _client(self) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return httpx.AsyncClient(
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
            follow_redirects=True,
        )

    def contents_url(self, repository: RepositoryIdentity, path: str) -> str:
        base = f"{self._api_base}/repos/{repository.owner}/{repository.name}/contents"
        return f"{base}/{quote(path)}" if path else base

    def raw_url(self, repository: RepositoryIdentity, ref: str, path: str) -> str:
        return f"{self._raw_base}/{repository.owner}/{repository.name}/{quote(ref)}/{quote(path)}"

    @circuit(
        failure_threshold=5,
        recovery_timeout=60,
        expected_exception=_counts_as_circuit_failure,
        name="github_api",
    )
    @retry(
        retry=retry_if_exception(_is_github_transient),
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=wait_random_exponential(multiplier=1, min=RETRY_MIN_WAIT, max=RETRY_MAX_WAIT),
        reraise=True,
    )
    async def _get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        params: dict[str, str] | None = None,
    ) -> Any:
        """GET url and decode JSON; raise GitHubClientError on any failure."""
        logger.debug("GET %s (%s)", url, "authenticated" if self._token else "unauthenticated")
        try:
            response = await client.get(url, params=params or None)
        except httpx.TimeoutException as e:
            raise GitHubClientError(
                "Request to GitHub timed out", is_transient=True, kind=ErrorKind.TRANSIENT
            ) from e
        except httpx.RequestError as e:
            raise GitHubClientError(
                f"Network error: {e!s}", is_transient=True, kind=ErrorKind.TRANSIENT
            ) from e

        rate_limit = _parse_rate_limit(response.headers)
        if rate_limit is not None:
            self._rate_limit = rate_limit
            logger.debug(
                "Rate limit: %d/%d, reset at %s",
                rate_limit.remaining,
                rate_limit.limit,
                time.strftime("%H:%M:%S", time.localtime(rate_limit.reset)),
            )
        if response.status_code != 200:
            raise _error_for_response(response)
        try:
            return response.json()
        except ValueError as e:
            raise GitHubClientError(
                "GitHub returned a response that is not JSON",
                status=response.status_code,
                kind=ErrorKind.MALFORMED,
            ) from e

    async def fetch_children(self, repository: RepositoryIdentity, path: str = "") -> FetchResult:
        """List the immediate children of path (or the path itself when it is a file).

        Returns:
            FetchResult with one ContentEntry per item, or a failure.
        """
        params = {"ref": repository.branch} if repository.branch else None
        try:
            async with self._client() as client:
                data = await self._get_json(client, self.contents_url(repository, path), params)
            items = data if isinstance(data, list) else [data]
            entries: List[ContentEntry] = []
            for item in items:
                if not isinstance(item, dict):
                    raise ValueError("Content item is not an object")
                entries.append(ContentEntry.from_api(item))
            return FetchResult.success(entries)
        except GitHubClientError as e:
            logger.error("Fetching %s:%r failed: %s", repository, path, e.message)
            return FetchResult.failure(e.to_fetch_error())
        except CircuitBreakerError:
            logger.error("GitHub circuit open, not fetching %s:%r", repository, path)
            return FetchResult.failure(_circuit_open_error())
        except ValueError as e:
            logger.error("Malformed contents response for %s:%r: %s", repository, path, e)
            return FetchResult.failure(
                FetchError(message=f"Malformed response from GitHub: {e}", kind=ErrorKind.MALFORMED)
            )

    async def fetch_recursive(
        self, repository: RepositoryIdentity, path: str, max_depth: int
    ) -> FetchResult:
        """List every descendant of path up to max_depth levels in one tree request.

        Uses the Git Trees API on the repository's branch (or default branch).
        Depth 1 is the immediate children of path. A truncated tree response is
        logged; the entries GitHub did return are still used.
        """
        try:
            async with self._client() as client:
                ref = repository.branch
                if not ref:
                    repo_data = await self._get_json(
                        client, f"{self._api_base}/repos/{repository.owner}/{repository.name}"
                    )
                    ref = (repo_data.get("default_branch") if isinstance(repo_data, dict) else None) or "main"
                tree_data = await self._get_json(
                    client,
                    f"{self._api_base}/repos/{repository.owner}/{repository.name}/git/trees/{quote(ref, safe='')}",
                    {"recursive": "1"},
                )
            if not isinstance(tree_data, dict) or not isinstance(tree_data.get("tree"), list):
                raise ValueError("Tree response has no tree list")
            if tree_data.get("truncated"):
                logger.warning(
                    "Tree of %s was truncated by GitHub; deeper entries load on expansion",
                    repository,
                )
            entries = self._entries_from_tree(repository, ref, tree_data["tree"], path, max_depth)
            logger.info(
                "Recursive fetch of %s:%r up to depth %d found %d items",
                repository,
                path,
                max_depth,
                len(entries),
            )
            return FetchResult.success(entries)
        except GitHubClientError as e:
            logger.error("Recursive fetch of %s:%r failed: %s", repository, path, e.message)
            return FetchResult.failure(e.to_fetch_error())
        except CircuitBreakerError:
            logger.error("GitHub circuit open, not fetching %s:%r", repository, path)
            return FetchResult.failure(_circuit_open_error())
        except ValueError as e:
            logger.error("Malformed tree response for %s: %s", repository, e)
            return FetchResult.failure(
                FetchError(message=f"Malformed response from GitHub: {e}", kind=ErrorKind.MALFORMED)
            )

    def _entries_from_tree(
        self,
        repository: RepositoryIdentity,
        ref: str,
        tree: List[Any],
        path: str,
        max_depth: int,
    ) -> List[ContentEntry]:
        base_depth = path_depth(path)
        prefix = f"{path}{PATH_SEPARATOR}" if path else ""
        entries: List[ContentEntry] = []
        for item in tree:
            if not isinstance(item, dict):
                raise ValueError("Tree item is not an object")
            item_path = item.get("path")
            if not isinstance(item_path, str) or not item_path:
                raise ValueError("Tree item has no path")
            if prefix and not item_path.startswith(prefix):
                continue
            relative_depth = path_depth(item_path) - base_depth
            if relative_depth < 1 or relative_depth > max_depth:
                continue
            kind = _tree_item_kind(item)
            size = item.get("size")
            entries.append(
                ContentEntry(
                    path=item_path,
                    name=item_path.rsplit(PATH_SEPARATOR, 1)[-1],
                    kind=kind,
                    size=size if isinstance(size, int) else 0,
                    sha=item.get("sha") if isinstance(item.get("sha"), str) else None,
                    download_url=self.raw_url(repository, ref, item_path) if kind is EntryKind.FILE else None,
                )
            )
        return entries

    async def fetch_entry(self, repository: RepositoryIdentity, path: str) -> ContentEntry:
        """Fetch the contents record of one file path.

        Raises:
            GitHubClientError: If the request fails or the path is not a single file.
        """
        params = {"ref": repository.branch} if repository.branch else None
        async with self._client() as client:
            data = await self._get_json(client, self.contents_url(repository, path), params)
        if not isinstance(data, dict):
            raise GitHubClientError(
                f"{path} is a directory, not a file", kind=ErrorKind.MALFORMED
            )
        try:
            return ContentEntry.from_api(data)
        except ValueError as e:
            raise GitHubClientError(str(e), kind=ErrorKind.MALFORMED) from e


def _circuit_open_error() -> FetchError:
    return FetchError(
        message="GitHub temporarily unavailable (too many failures). Try again later.",
        kind=ErrorKind.TRANSIENT,
        is_transient=True,
    )
