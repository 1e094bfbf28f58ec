"""Auth request and response models."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskauth.models.user import Role, User


class RegisterRequest(BaseModel):
    """Self-service registration.

    Format rules (email shape, password length) are enforced by the auth
    service so that they surface as ``ValidationFailed`` like any other
    rejected input.
    """

    email: str
    username: str
    password: str


class LoginRequest(BaseModel):
    """Login credentials for authentication."""

    email: str
    password: str


class RefreshRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair."""

    refresh_token: str


class LogoutRequest(BaseModel):
    """Refresh token to revoke alongside the bearer access token."""

    refresh_token: str


class ChangeRoleRequest(BaseModel):
    """Admin request to change a user's role."""

    role: Role


class AccessClaims(BaseModel):
    """Claims carried inside a signed access token.

    Attributes:
        sub: User id
        role: User role at issue time
        iat: Issued-at, seconds since the epoch
        exp: Expiry, seconds since the epoch
        jti: Unique per-issuance identifier
    """

    sub: UUID
    role: Role
    iat: int
    exp: int
    jti: str = Field(..., min_length=1)


class Principal(BaseModel):
    """The authenticated identity resolved from a valid access token."""

    user_id: UUID
    role: Role
    jti: str
    exp: int

    @classmethod
    def from_claims(cls, claims: AccessClaims) -> "Principal":
        return cls(user_id=claims.sub, role=claims.role, jti=claims.jti, exp=claims.exp)


class TokenPair(BaseModel):
    """Access + refresh tokens returned by login and refresh.

    Attributes:
        access_token: Short-lived signed token for API access
        refresh_token: Long-lived opaque handle for obtaining a new pair
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")


class UserSummary(BaseModel):
    """User representation for API responses. Never includes the hash."""

    id: UUID
    email: str
    username: str
    role: Role
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserEnvelopeData(BaseModel):
    """``data`` payload for endpoints returning a single user."""

    user: UserSummary


class EnvelopeResponse(BaseModel):
    """Success envelope: ``{status, message?, data?}``."""

    status: int
    message: Optional[str] = None
    data: Optional[Any] = None


class ErrorEnvelope(BaseModel):
    """Error envelope: ``{status, message, error?}``."""

    status: int
    message: str
    error: Optional[str] = None
