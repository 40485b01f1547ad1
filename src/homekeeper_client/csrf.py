"""CSRF token cache and the rules deciding which requests carry the token."""

from __future__ import annotations

from typing import Callable


CSRF_HEADER = "X-CSRF-Token"
CSRF_TOKEN_PATH = "/auth/csrf-token"
REFRESH_PATH = "/auth/refresh"
CSRF_PROTECTED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Route roots the backend serves without CSRF enforcement or session refresh.
AUTH_ROUTE_ROOTS = frozenset({"auth"})

AuthPathPredicate = Callable[[str], bool]


class CsrfTokenCache:
    """Holds at most one CSRF token until it is cleared.

    Each client owns one unless a cache is passed in; sharing an instance
    between clients lets them reuse a single fetched token.
    """

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    @property
    def token(self) -> str | None:
        return self._token

    def set(self, token: str) -> None:
        self._token = token

    def clear(self) -> None:
        self._token = None

    def __bool__(self) -> bool:
        return self._token is not None

    def __repr__(self) -> str:
        state = "set" if self._token else "empty"
        return f"CsrfTokenCache({state})"


def _first_segment(path: str) -> str:
    path = path.split("?", 1)[0].split("#", 1)[0]
    for segment in path.split("/"):
        if segment:
            return segment
    return ""


def is_auth_path(path: str, roots: frozenset[str] = AUTH_ROUTE_ROOTS) -> bool:
    """Return True when the first path segment is one of the auth route roots."""
    return _first_segment(path) in roots


def requires_csrf(method: str, path: str, auth_path: AuthPathPredicate = is_auth_path) -> bool:
    return method.upper() in CSRF_PROTECTED_METHODS and not auth_path(path)
