"""Client-specific exceptions."""

from __future__ import annotations


SESSION_EXPIRED_MESSAGE = "Session expired, please log in again"


class HomeKeeperError(Exception):
    """Base exception for all HomeKeeper client failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: object = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        if self.status_code is None:
            return self.message
        return f"{self.status_code}: {self.message}"


class ApiError(HomeKeeperError):
    """Raised for HTTP non-success responses from the API."""

    status_code: int

    def __init__(self, status_code: int, message: str, *, body: object = None) -> None:
        super().__init__(message, status_code=status_code, body=body)


class SessionExpiredError(ApiError):
    """Raised when the refresh endpoint answers 205 and a new login is required."""

    def __init__(self, *, body: object = None) -> None:
        super().__init__(205, SESSION_EXPIRED_MESSAGE, body=body)


class HomeKeeperValidationError(HomeKeeperError):
    """Raised when arguments are rejected before a request is sent."""
