"""User and refresh credential models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, field_validator, model_validator


class Role(str, Enum):
    """Access role attached to a user and carried in access tokens."""

    USER = "user"
    ADMIN = "admin"


class User(BaseModel):
    """A registered user of the task management application."""

    id: UUID
    email: str
    username: str
    password_hash: str
    role: Role = Role.USER
    created_at: datetime
    updated_at: datetime

    @field_validator("email")
    @classmethod
    def email_case_folded(cls, v: str) -> str:
        """Store emails in their case-folded form."""
        return v.strip().casefold()

    @field_validator("password_hash")
    @classmethod
    def password_hash_not_empty(cls, v: str) -> str:
        """Reject the empty hash."""
        if not v:
            raise ValueError("password_hash cannot be empty")
        return v


class RefreshCredential(BaseModel):
    """A persisted refresh credential, keyed by its opaque handle.

    Attributes:
        token: The opaque handle given to the client
        user_id: Owner of the credential
        issued_at: When the credential was issued
        expires_at: When the credential stops being accepted
        revoked: True once rotated away or logged out; never reset
    """

    token: str
    user_id: UUID
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False

    @model_validator(mode="after")
    def expires_after_issue(self) -> "RefreshCredential":
        """Require expires_at to be strictly after issued_at."""
        if self.expires_at <= self.issued_at:
            raise ValueError("expires_at must be after issued_at")
        return self
