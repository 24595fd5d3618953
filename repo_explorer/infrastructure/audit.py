"""Audit logging for the explorer API.

- One JSON line per mutating request (repository switch, refresh, selection, download)
- Append-only, each entry carries a sha256 hash of its own content
- Correlation IDs (UUID) tie an entry to the X-Correlation-ID response header
"""

from __future__ import annotations

import hashlib
import json
import os
import traceback
from datetime import datetime, timezone
from typing import Any

# Default: project root, or set AUDIT_LOG_PATH in env
DEFAULT_AUDIT_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "AUDIT.jsonl",
)


def _timestamp_utc() -> str:
    return datetime.now(timezone.utc).isoformat()


def log_audit(
    event_type: str,
    resource: str,
    action: str,
    result: str,
    correlation_id: str,
    metadata: dict[str, Any] | None = None,
    *,
    audit_path: str | None = None,
) -> None:
    """Append one audit entry (JSON line). Append-only, no deletion.

    Hash computed over the entry without log_hash, so tampering with a line is detectable.
    """
    path = audit_path or os.environ.get("AUDIT_LOG_PATH", DEFAULT_AUDIT_PATH)
    entry = {
        "timestamp": _timestamp_utc(),
        "event_type": event_type,
        "actor_id": "api",
        "actor_type": "system",
        "resource": resource,
        "action": action,
        "result": result,
        "correlation_id": correlation_id,
        "metadata": dict(metadata) if metadata else {},
    }
    line_bytes = json.dumps(entry, ensure_ascii=False).encode("utf-8")
    entry["log_hash"] = hashlib.sha256(line_bytes).hexdigest()
    line = json.dumps(entry, ensure_ascii=False) + "\n"
    with open(path, "a", encoding="utf-8") as f:
        f.write(line)


def verify_entry(entry: dict[str, Any]) -> bool:
    """Return True if entry's log_hash matches its other fields."""
    body = {k: v for k, v in entry.items() if k != "log_hash"}
    line_bytes = json.dumps(body, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(line_bytes).hexdigest() == entry.get("log_hash")


def error_detail_from_exception(exc: BaseException, where: str) -> dict[str, Any]:
    """Build an error_detail dict from an exception.

    Args:
        exc: The exception that was raised.
        where: Identifier of where it happened (e.g. "repo_explorer.main.download").

    Returns:
        Dict with message, where, and traceback (string).
    """
    return {
        "message": str(exc),
        "where": where,
        "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).strip(),
    }
