"""Python client for the HomeKeeper household-management API."""

from .client import AsyncHomeKeeperClient, HomeKeeperClient
from .csrf import CsrfTokenCache, is_auth_path
from .exceptions import (
    ApiError,
    HomeKeeperError,
    HomeKeeperValidationError,
    SessionExpiredError,
)
from .models import HouseholdRole, InvitationStatus
from .request_options import RequestOptions

__all__ = [
    "ApiError",
    "AsyncHomeKeeperClient",
    "CsrfTokenCache",
    "HomeKeeperClient",
    "HomeKeeperError",
    "HomeKeeperValidationError",
    "HouseholdRole",
    "InvitationStatus",
    "RequestOptions",
    "SessionExpiredError",
    "is_auth_path",
]

__version__ = "0.1.0"
