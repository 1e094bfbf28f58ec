"""Models package exports."""

from taskauth.models.auth import (
    AccessClaims,
    LoginRequest,
    LogoutRequest,
    Principal,
    RefreshRequest,
    RegisterRequest,
    TokenPair,
    UserSummary,
)
from taskauth.models.user import RefreshCredential, Role, User

__all__ = [
    "AccessClaims",
    "LoginRequest",
    "LogoutRequest",
    "Principal",
    "RefreshCredential",
    "RefreshRequest",
    "RegisterRequest",
    "Role",
    "TokenPair",
    "User",
    "UserSummary",
]
