"""Security helpers shared by the clients."""

from __future__ import annotations

from typing import Mapping
from urllib.parse import urlparse


SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-csrf-token",
}

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1"}


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with sensitive values redacted for logging."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = value
    return redacted


def validate_base_url(url: str, *, allow_http: bool = False) -> None:
    """Validate base URL to avoid sending session cookies over plain HTTP."""
    if "\x00" in url:
        raise ValueError("Invalid base_url")
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError("base_url must include scheme and host")
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"Unsupported base_url scheme: {parsed.scheme}")
    if parsed.scheme == "http" and not allow_http:
        host = (parsed.hostname or "").lower()
        if host not in LOOPBACK_HOSTS:
            raise ValueError("Non-HTTPS base_url is not allowed without allow_http=True")


def validate_path(path: str) -> str:
    if "://" in path:
        raise ValueError("Full URLs are not allowed in path for request method")
    if not path.startswith("/"):
        raise ValueError("Path must be absolute and start with '/'")
    if "\x00" in path:
        raise ValueError("Invalid path characters")
    return path
