"""FastAPI application: browse a GitHub repository tree, select nodes, download the selection."""

from __future__ import annotations

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from repo_explorer.clients.downloader import Downloader
from repo_explorer.clients.github_client import GitHubContentFetcher, parse_repository_url
from repo_explorer.config import Settings, get_env_file_path, get_settings
from repo_explorer.infrastructure.audit import error_detail_from_exception, log_audit
from repo_explorer.infrastructure.recents import RecentsStore
from repo_explorer.models.content import ROOT_PATH, RepositoryIdentity
from repo_explorer.models.node import NodeKind, TreeNode
from repo_explorer.models.schemas import (
    DownloadItem,
    DownloadRequest,
    DownloadResponse,
    ErrorResponse,
    NodeResponse,
    RefreshRequest,
    RepositoryRequest,
    RepositoryResponse,
    SelectionResponse,
    ToggleRequest,
    TreeResponse,
)
from repo_explorer.services.explorer import RepositoryExplorer

logger = logging.getLogger(__name__)


def build_explorer(settings: Settings) -> RepositoryExplorer:
    """Explorer wired to the real GitHub fetcher and downloader."""
    fetcher = GitHubContentFetcher.from_settings(settings)
    return RepositoryExplorer(
        fetcher,
        downloader=Downloader.from_settings(settings, fetcher),
        initial_load_depth=settings.INITIAL_LOAD_DEPTH,
    )


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Startup: configure logging, build the explorer and recents store, reopen the last repository. Shutdown: none."""
    _configure_structured_logging()
    settings = get_settings()
    logger.info(
        "Config: env_file=%s, GITHUB_TOKEN=%s",
        get_env_file_path(),
        "set" if settings.github_token() else "not set",
    )
    app.state.settings = settings
    app.state.explorer = build_explorer(settings)
    app.state.recents = RecentsStore(settings.RECENTS_PATH, settings.MAX_RECENT_REPOSITORIES)
    last = app.state.recents.get_last_repository()
    if last is not None:
        app.state.explorer.set_repository(last)
        logger.info("Restored last repository %s", last)
    yield


app = FastAPI(
    title="Repository Explorer",
    description="Browse a GitHub repository tree and download a selection",
    lifespan=_lifespan,
)


def _configure_structured_logging() -> None:
    """Configure JSON structured logging when Settings.LOG_FORMAT=json for observability."""
    if not hasattr(_configure_structured_logging, "_done"):
        _configure_structured_logging._done = False
    if _configure_structured_logging._done:
        return
    if get_settings().LOG_FORMAT == "json":
        for h in logging.root.handlers[:]:
            logging.root.removeHandler(h)
        handler = logging.StreamHandler()
        handler.setFormatter(_JsonFormatter())
        logging.root.addHandler(handler)
        logging.root.setLevel(logging.INFO)
    _configure_structured_logging._done = True


class _JsonFormatter(logging.Formatter):
    """Format log records as JSON with timestamp, level, message, and extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        obj = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S.000Z", time.gmtime(record.created)),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if hasattr(record, "correlation_id"):
            obj["correlation_id"] = record.correlation_id
        if hasattr(record, "operation_name"):
            obj["operation_name"] = record.operation_name
        return json.dumps(obj, ensure_ascii=False)


def _get_explorer(request: Request) -> RepositoryExplorer:
    return request.app.state.explorer


def _get_recents(request: Request) -> RecentsStore:
    return request.app.state.recents


def _get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


@app.exception_handler(RequestValidationError)
def validation_exception_handler(_request: object, exc: RequestValidationError) -> JSONResponse:
    """Return the error body for validation errors instead of FastAPI's default 422 shape."""
    errors = exc.errors() or []
    msg = "Invalid request"
    if errors:
        msg = str(errors[0].get("msg", msg)).removeprefix("Value error, ")
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(status="error", message=msg).model_dump(),
    )


def _error(status: int, message: str, correlation_id: str | None = None) -> JSONResponse:
    headers = {"X-Correlation-ID": correlation_id} if correlation_id else None
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(status="error", message=message).model_dump(),
        headers=headers,
    )


def _audit(
    request: Request,
    resource: str,
    action: str,
    result: str,
    correlation_id: str,
    metadata: dict | None = None,
) -> None:
    """Write one audit entry; a failed write is logged, never returned to the client."""
    try:
        log_audit(
            event_type="api_request",
            resource=resource,
            action=action,
            result=result,
            correlation_id=correlation_id,
            metadata=metadata,
            audit_path=_get_app_settings(request).AUDIT_LOG_PATH,
        )
    except OSError as e:
        logger.warning("Could not write audit entry: %s", e)


def _node_response(explorer: RepositoryExplorer, node: TreeNode) -> NodeResponse:
    decoration = explorer.decorate(node)
    selected = False if node.is_placeholder else explorer.is_selected(node.path)
    return NodeResponse(
        path=node.path,
        name=node.name,
        kind=node.entry.kind.value if node.entry is not None else node.kind.value,
        is_directory=node.is_directory,
        selected=selected,
        label=decoration.label,
        description=decoration.description,
        tooltip=decoration.tooltip,
        icon=decoration.icon,
        checked=decoration.checked,
        message=node.message,
    )


def _selection_response(explorer: RepositoryExplorer) -> SelectionResponse:
    selected = sorted(explorer.get_selected())
    return SelectionResponse(selected=selected, count=len(selected))


@app.get("/")
def root() -> dict[str, str]:
    """Root route: point to the repository endpoint and API docs."""
    return {
        "message": "Repository Explorer. PUT /repository with {\"url\": \"https://github.com/owner/repo\"}, then GET /tree",
        "docs": "/docs",
    }


@app.put("/repository", response_model=RepositoryResponse)
async def set_repository(
    body: RepositoryRequest,
    request: Request,
    response: Response,
    explorer: RepositoryExplorer = Depends(_get_explorer),
    recents: RecentsStore = Depends(_get_recents),
) -> RepositoryResponse | JSONResponse:
    """Switch the explorer to another repository; a no-op if it is already current."""
    correlation_id = str(uuid.uuid4())
    if body.url:
        repository = parse_repository_url(body.url)
        if repository is None:
            _audit(request, "/repository", "PUT", "failure", correlation_id, {"url": body.url})
            return _error(400, "Invalid GitHub repository URL", correlation_id)
        if body.branch:
            repository = RepositoryIdentity(repository.owner, repository.name, body.branch)
    else:
        repository = RepositoryIdentity(owner=body.owner, name=body.name, branch=body.branch)

    changed = explorer.set_repository(repository)
    try:
        recents.add_recent_repository(repository)
    except OSError as e:
        logger.warning("Could not save recent repository %s: %s", repository, e)
    _audit(
        request, "/repository", "PUT", "success", correlation_id,
        {"repository": str(repository), "changed": changed},
    )
    response.headers["X-Correlation-ID"] = correlation_id
    return RepositoryResponse(
        owner=repository.owner, name=repository.name, branch=repository.branch, changed=changed
    )


@app.get("/repository", response_model=RepositoryResponse)
async def get_repository(
    explorer: RepositoryExplorer = Depends(_get_explorer),
) -> RepositoryResponse | JSONResponse:
    repository = explorer.get_repository()
    if repository is None:
        return _error(409, "No repository is set")
    return RepositoryResponse(owner=repository.owner, name=repository.name, branch=repository.branch)


@app.get("/repository/recent", response_model=list[RepositoryResponse])
def get_recent_repositories(
    recents: RecentsStore = Depends(_get_recents),
) -> list[RepositoryResponse]:
    return [
        RepositoryResponse(owner=r.owner, name=r.name, branch=r.branch)
        for r in recents.get_recent_repositories()
    ]


@app.delete("/repository/recent", response_model=list[RepositoryResponse])
def clear_recent_repositories(
    request: Request,
    response: Response,
    recents: RecentsStore = Depends(_get_recents),
) -> list[RepositoryResponse] | JSONResponse:
    """Forget every recent repository and the last one opened."""
    correlation_id = str(uuid.uuid4())
    try:
        recents.clear()
    except OSError as e:
        logger.error("Could not clear recent repositories: %s", e)
        _audit(request, "/repository/recent", "DELETE", "failure", correlation_id)
        return _error(500, "Could not clear recent repositories", correlation_id)
    _audit(request, "/repository/recent", "DELETE", "success", correlation_id)
    response.headers["X-Correlation-ID"] = correlation_id
    return []


@app.get("/tree", response_model=TreeResponse)
async def get_tree(
    path: str = ROOT_PATH,
    wait: bool = False,
    explorer: RepositoryExplorer = Depends(_get_explorer),
) -> TreeResponse | JSONResponse:
    """Children of path (root when empty). wait=true blocks until the root load settles."""
    if explorer.get_repository() is None:
        return _error(409, "No repository is set")
    if path == ROOT_PATH:
        if wait:
            await explorer.ensure_root_loaded()
        children = await explorer.get_children()
    else:
        node = explorer.get_node(path)
        if node is None:
            return _error(404, f"Path not loaded: {path}")
        children = await explorer.get_children(node)
    return TreeResponse(
        path=path,
        loading=any(c.kind is NodeKind.LOADING for c in children),
        children=[_node_response(explorer, c) for c in children],
    )


@app.post("/refresh", response_model=TreeResponse)
async def refresh(
    body: RefreshRequest,
    request: Request,
    response: Response,
    explorer: RepositoryExplorer = Depends(_get_explorer),
) -> TreeResponse | JSONResponse:
    """Drop cached data for one directory, or everything when no path is given."""
    correlation_id = str(uuid.uuid4())
    if explorer.get_repository() is None:
        return _error(409, "No repository is set", correlation_id)
    if body.path:
        node = explorer.get_node(body.path)
        if node is None:
            return _error(404, f"Path not loaded: {body.path}", correlation_id)
        explorer.refresh(node)
    else:
        explorer.refresh()
    _audit(request, "/refresh", "POST", "success", correlation_id, {"path": body.path})
    response.headers["X-Correlation-ID"] = correlation_id
    return TreeResponse(path=body.path or ROOT_PATH, loading=False, children=[])


@app.post("/selection/toggle", response_model=SelectionResponse)
async def toggle_selection(
    body: ToggleRequest,
    request: Request,
    explorer: RepositoryExplorer = Depends(_get_explorer),
) -> SelectionResponse:
    correlation_id = str(uuid.uuid4())
    if body.recursive:
        explorer.toggle_recursive(body.path)
    else:
        explorer.toggle(body.path)
    _audit(
        request, "/selection/toggle", "POST", "success", correlation_id,
        {"path": body.path, "recursive": body.recursive},
    )
    return _selection_response(explorer)


@app.get("/selection", response_model=SelectionResponse)
async def get_selection(explorer: RepositoryExplorer = Depends(_get_explorer)) -> SelectionResponse:
    return _selection_response(explorer)


@app.delete("/selection", response_model=SelectionResponse)
async def clear_selection(
    request: Request,
    explorer: RepositoryExplorer = Depends(_get_explorer),
) -> SelectionResponse:
    explorer.clear_selection()
    _audit(request, "/selection", "DELETE", "success", str(uuid.uuid4()))
    return _selection_response(explorer)


@app.post("/download", response_model=DownloadResponse)
async def download(
    body: DownloadRequest,
    request: Request,
    response: Response,
    explorer: RepositoryExplorer = Depends(_get_explorer),
    settings: Settings = Depends(_get_app_settings),
) -> DownloadResponse | JSONResponse:
    """Download every selected, loaded entry into destination (or DOWNLOAD_DIR)."""
    correlation_id = str(uuid.uuid4())
    if explorer.get_repository() is None:
        return _error(409, "No repository is set", correlation_id)
    if not explorer.get_selected():
        return _error(400, "Nothing is selected", correlation_id)
    destination = body.destination or settings.DOWNLOAD_DIR
    t0 = time.perf_counter()
    try:
        results = await explorer.download_selected(destination)
    except OSError as e:
        detail = error_detail_from_exception(e, "repo_explorer.main.download")
        _audit(request, "/download", "POST", "failure", correlation_id, {"error_detail": detail})
        return _error(500, f"Download failed: {e}", correlation_id)
    succeeded = sum(1 for r in results if r.success)
    failed = len(results) - succeeded
    _audit(
        request, "/download", "POST", "success" if failed == 0 else "partial", correlation_id,
        {
            "destination": destination,
            "succeeded": succeeded,
            "failed": failed,
            "duration_ms": round((time.perf_counter() - t0) * 1000, 2),
        },
    )
    logger.info(
        "Download finished: %d succeeded, %d failed",
        succeeded,
        failed,
        extra={"correlation_id": correlation_id, "operation_name": "download"},
    )
    response.headers["X-Correlation-ID"] = correlation_id
    return DownloadResponse(
        succeeded=succeeded,
        failed=failed,
        results=[DownloadItem(path=r.entry.path, success=r.success, error=r.error) for r in results],
    )
