#!/usr/bin/env python3
"""
Debug the explorer flow against a real repository.
Runs the same steps as the API (set repository, expand the root, expand one directory,
select, optionally download), printing what is fetched, what is cached and what is selected.

Run from project root with venv activated:
  python scripts/debug_tree_flow.py                                  - default repository
  python scripts/debug_tree_flow.py https://github.com/owner/repo    - another repository
  python scripts/debug_tree_flow.py --download ./out                 - also download the selection
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Allow running from project root or from scripts/
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

DEFAULT_REPO_URL = "https://github.com/psf/requests"


def _header(title: str) -> None:
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


# ---------------------------------------------------------------------------
# Step 0: Parameters and settings
# ---------------------------------------------------------------------------
def step0_params(repo_url: str):
    from repo_explorer.clients.github_client import parse_repository_url
    from repo_explorer.config import get_settings

    _header("Step 0: Parameters and settings")
    repository = parse_repository_url(repo_url)
    if repository is None:
        print(f"  Not a GitHub repository URL: {repo_url!r}")
        return None, None
    settings = get_settings()
    print(f"  Repository: {repository}")
    print(f"  INITIAL_LOAD_DEPTH: {settings.INITIAL_LOAD_DEPTH}")
    print(f"  MAX_CONCURRENT_DOWNLOADS: {settings.MAX_CONCURRENT_DOWNLOADS}")
    print(f"  GITHUB_TOKEN: {'set (5000 req/h)' if settings.github_token() else 'not set - 60/h limit'}")
    return repository, settings


# ---------------------------------------------------------------------------
# Step 1: Root bulk load
# ---------------------------------------------------------------------------
async def step1_root(explorer):
    _header("Step 1: Expand the root (one recursive tree request)")
    first = await explorer.get_children()
    print(f"  First answer: {[n.name for n in first]}")
    root = await explorer.ensure_root_loaded()
    print(f"  Root items ({len(root)}):")
    for node in root:
        print(f"    {explorer.decorate(node).icon:14} {node.path}")
    print(f"  Nodes cached after bulk load: {len(explorer.state.get_all_items())}")
    return root


# ---------------------------------------------------------------------------
# Step 2: Expand the first directory
# ---------------------------------------------------------------------------
async def step2_directory(explorer, root):
    _header("Step 2: Expand the first directory (cache first, then contents API)")
    directory = next((n for n in root if n.is_directory), None)
    if directory is None:
        print("  No directory at the root.")
        return None
    before = len(explorer.state.get_all_items())
    children = await explorer.get_children(directory)
    print(f"  {directory.path}: {len(children)} children, {len(explorer.state.get_all_items()) - before} newly cached")
    for node in children:
        decoration = explorer.decorate(node)
        print(f"    {decoration.icon:14} {node.path}  {decoration.description or ''}")
    return directory


# ---------------------------------------------------------------------------
# Step 3: Select
# ---------------------------------------------------------------------------
def step3_select(explorer, directory):
    _header("Step 3: Recursive selection of the directory")
    explorer.handle_checkbox_change(directory)
    selected = sorted(explorer.get_selected())
    print(f"  Selected {len(selected)} known paths:")
    for path in selected:
        print(f"    - {path}")


# ---------------------------------------------------------------------------
# Step 4: Download (optional)
# ---------------------------------------------------------------------------
async def step4_download(explorer, destination: str):
    _header(f"Step 4: Download the selection into {destination}")
    results = await explorer.download_selected(destination)
    for r in results:
        print(f"    {'ok  ' if r.success else 'FAIL'} {r.entry.path}  {r.error or ''}")
    print(f"\n  Summary: {sum(1 for r in results if r.success)} of {len(results)} written.")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
async def _run(repository, settings, download_to: str | None) -> int:
    from repo_explorer.main import build_explorer

    explorer = build_explorer(settings)
    explorer.set_repository(repository)
    root = await step1_root(explorer)
    if not root or root[0].is_placeholder:
        print("Root did not load - exiting.")
        return 1
    directory = await step2_directory(explorer, root)
    if directory is None:
        return 0
    step3_select(explorer, directory)
    if download_to:
        await step4_download(explorer, download_to)
    else:
        print("\n(Skipping step 4 - no --download destination)\n")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Debug the repository explorer flow")
    parser.add_argument("url", nargs="?", default=DEFAULT_REPO_URL, help="GitHub repository URL")
    parser.add_argument("--download", metavar="DIR", help="Download the selection into DIR")
    args = parser.parse_args()

    print("\n*** Debug explorer flow:", args.url, "***")
    repository, settings = step0_params(args.url)
    if repository is None:
        return 1
    return asyncio.run(_run(repository, settings, args.download))


if __name__ == "__main__":
    sys.exit(main())
