"""Small utility helpers used across the runner."""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import urlparse


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_rfc3339(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def format_optional(dt: datetime | None) -> str | None:
    return format_rfc3339(dt) if dt is not None else None


def is_http_url(raw: str) -> bool:
    p = urlparse(raw)
    return p.scheme in ("http", "https") and bool(p.netloc)


def join_url(base_url: str, path: str) -> str:
    """Concatenate base and path the way the job list expects (path carries its leading slash)."""
    if not path:
        return base_url
    if base_url.endswith("/") and path.startswith("/"):
        return base_url + path[1:]
    if not base_url.endswith("/") and not path.startswith("/"):
        return f"{base_url}/{path}"
    return base_url + path
