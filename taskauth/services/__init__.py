"""Services package exports."""

from taskauth.services.auth_service import AuthService
from taskauth.services.logging_service import configure_logging, get_logger

__all__ = [
    "AuthService",
    "configure_logging",
    "get_logger",
]
