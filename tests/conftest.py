"""Shared pytest fixtures for Repository Explorer tests."""

import sys
from pathlib import Path

# Ensure project root is on path so "repo_explorer" package is found
_root = Path(__file__).resolve().parent.parent
if str(_root) not in sys.path:
    sys.path.insert(0, str(_root))

from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

from repo_explorer.config import Settings
from repo_explorer.infrastructure.recents import RecentsStore
from repo_explorer.main import app
from repo_explorer.models.content import ContentEntry, EntryKind, FetchResult
from repo_explorer.services.explorer import RepositoryExplorer

# Load .env from project root so GITHUB_TOKEN (and others) are available in os.environ for tests
load_dotenv(Path(__file__).resolve().parent.parent / ".env")


def make_file(path: str, size: int = 0, **kwargs) -> ContentEntry:
    return ContentEntry(path=path, name=path.rsplit("/", 1)[-1], kind=EntryKind.FILE, size=size, **kwargs)


def make_dir(path: str) -> ContentEntry:
    return ContentEntry(path=path, name=path.rsplit("/", 1)[-1], kind=EntryKind.DIRECTORY)


# Listing used by the end-to-end tree tests: one file and one directory at the root.
SAMPLE_TREE = [
    make_file("file1.txt", 10),
    make_dir("dir1"),
    make_file("dir1/file2.txt", 20),
]


@pytest.fixture
def fetcher() -> MagicMock:
    """Content fetcher double: bulk load returns SAMPLE_TREE, directory loads return nothing."""
    mock = MagicMock()
    mock.fetch_recursive = AsyncMock(return_value=FetchResult.success(SAMPLE_TREE))
    mock.fetch_children = AsyncMock(return_value=FetchResult.success([]))
    return mock


@pytest.fixture
def downloader() -> MagicMock:
    mock = MagicMock()
    mock.download_many = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def explorer(fetcher: MagicMock, downloader: MagicMock) -> RepositoryExplorer:
    return RepositoryExplorer(fetcher, downloader=downloader)


@pytest.fixture
def client(explorer: RepositoryExplorer, tmp_path: Path):
    """FastAPI TestClient with a fake-fetcher explorer; audit, recents and downloads go to tmp_path."""
    with TestClient(app) as test_client:
        app.state.explorer = explorer
        app.state.settings = Settings(
            AUDIT_LOG_PATH=str(tmp_path / "AUDIT.jsonl"),
            RECENTS_PATH=str(tmp_path / "recents.json"),
            DOWNLOAD_DIR=str(tmp_path / "downloads"),
        )
        app.state.recents = RecentsStore(tmp_path / "recents.json")
        yield test_client
