"""Tests for repo_explorer.models: path helpers, entry parsing, node decoration."""

import pytest

from conftest import make_dir, make_file

from repo_explorer.models.content import (
    ContentEntry,
    EntryKind,
    FetchError,
    RepositoryIdentity,
    is_descendant,
    is_direct_child,
    path_depth,
)
from repo_explorer.models.node import NodeKind, TreeNode, format_size


# --- paths ---


@pytest.mark.parametrize(
    "path,depth",
    [("", 0), ("a", 1), ("a/b", 2), ("a/b/c", 3)],
)
def test_path_depth(path: str, depth: int) -> None:
    assert path_depth(path) == depth


def test_is_descendant_uses_separator_boundary() -> None:
    assert is_descendant("src/a.py", "src")
    assert is_descendant("src/lib/b.py", "src")
    assert not is_descendant("srcfile.txt", "src")
    assert not is_descendant("src", "src")
    assert is_descendant("anything", "")
    assert not is_descendant("", "")


def test_is_direct_child() -> None:
    assert is_direct_child("src/a.py", "src")
    assert not is_direct_child("src/lib/b.py", "src")
    assert is_direct_child("README.md", "")


def test_repository_identity_equality_and_str() -> None:
    assert RepositoryIdentity("o", "r") == RepositoryIdentity("o", "r", None)
    assert RepositoryIdentity("o", "r") != RepositoryIdentity("o", "r", "dev")
    assert str(RepositoryIdentity("o", "r", "dev")) == "o/r (dev)"


# --- ContentEntry ---


def test_entry_from_api_item() -> None:
    entry = ContentEntry.from_api(
        {
            "path": "src/main.py",
            "name": "main.py",
            "type": "file",
            "size": 42,
            "sha": "abc",
            "download_url": "https://raw.githubusercontent.com/o/r/main/src/main.py",
        }
    )
    assert entry.kind is EntryKind.FILE
    assert entry.size == 42
    assert entry.parent_path == "src"
    assert entry.depth == 2


def test_entry_from_api_prefers_inline_content() -> None:
    entry = ContentEntry.from_api(
        {"path": "a.txt", "type": "file", "content": "aGk=", "encoding": "base64", "download_url": "https://x/a.txt"}
    )
    assert entry.content == "aGk="
    assert entry.download_url is None
    assert entry.name == "a.txt"


@pytest.mark.parametrize(
    "item",
    [{"type": "file"}, {"path": "a", "type": "weird"}, {"path": "", "type": "dir"}],
)
def test_entry_from_api_rejects_malformed_items(item: dict) -> None:
    with pytest.raises(ValueError):
        ContentEntry.from_api(item)


def test_entry_with_both_url_and_content_is_rejected() -> None:
    with pytest.raises(ValueError):
        make_file("a.txt", download_url="https://x/a.txt", content="aGk=")


# --- TreeNode ---


@pytest.mark.parametrize(
    "size,expected",
    [(0, "0 B"), (512, "512 B"), (1024, "1.0 KB"), (1536, "1.5 KB"), (1024 * 1024, "1.0 MB"), (3 * 1024**3, "3.0 GB")],
)
def test_format_size(size: int, expected: str) -> None:
    assert format_size(size) == expected


def test_decorate_selected_directory() -> None:
    decoration = TreeNode(make_dir("src")).decorate(True)
    assert decoration.icon == "folder-active"
    assert decoration.checked is True
    assert decoration.collapsible is True
    assert decoration.description is None


def test_decorate_file_shows_size() -> None:
    decoration = TreeNode(make_file("src/a.py", 2048)).decorate(False)
    assert decoration.label == "a.py"
    assert decoration.tooltip == "src/a.py"
    assert decoration.icon == "file"
    assert decoration.description == "2.0 KB"
    assert decoration.checked is False


def test_placeholders_have_no_checkbox() -> None:
    loading = TreeNode.loading()
    failed = TreeNode.failed(FetchError("Not found"))
    assert loading.kind is NodeKind.LOADING and loading.is_placeholder
    assert failed.message == "Error: Not found"
    assert loading.decorate(False).checked is None
    assert failed.decorate(False).icon == "error"
    assert not failed.is_directory
