"""Error taxonomy for the credential lifecycle.

Every error carries a stable ``kind`` (surfaced to clients in the ``error``
field of the response envelope) and the HTTP status the API boundary maps it
to. Leaf components raise the most specific subclass; callers catch the
broad ones.
"""

from typing import Optional


class AuthServiceError(Exception):
    """Base class for errors raised by the auth core."""

    kind: str = "Internal"
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailedError(AuthServiceError):
    """Malformed email, weak password or missing fields (400)."""

    kind = "ValidationFailed"
    status_code = 400
    default_message = "Validation failed"


class BadCredentialsError(AuthServiceError):
    """Wrong email/password combination (401).

    The message is deliberately the same for unknown emails and wrong
    passwords.
    """

    kind = "BadCredentials"
    status_code = 401
    default_message = "Invalid email or password"


class ConflictEmailError(AuthServiceError):
    """Registration with an email that already exists (409)."""

    kind = "ConflictEmail"
    status_code = 409
    default_message = "Email already registered"


class NotFoundError(AuthServiceError):
    """A user or refresh record does not exist (404)."""

    kind = "NotFound"
    status_code = 404
    default_message = "Resource not found"


class ForbiddenError(AuthServiceError):
    """Authenticated, but the role is insufficient (403)."""

    kind = "Forbidden"
    status_code = 403
    default_message = "Insufficient role"


class StorageError(AuthServiceError):
    """Transient or permanent store failure (500). Details are logged only."""

    kind = "Storage"
    status_code = 500
    default_message = "Internal server error"


class MalformedHashError(StorageError):
    """A stored password hash could not be parsed."""


class DeadlineExceededError(AuthServiceError):
    """The operation did not finish within its deadline (503)."""

    kind = "DeadlineExceeded"
    status_code = 503
    default_message = "Service temporarily unavailable"


# ---------------------------------------------------------------------------
# Credential rejections (all 401)
# ---------------------------------------------------------------------------


class CredentialError(AuthServiceError):
    """A presented credential was rejected."""

    kind = "Invalid"
    status_code = 401
    default_message = "Invalid credential"


class InvalidCredentialError(CredentialError):
    """Unknown, already-used or orphaned credential."""


class MalformedTokenError(InvalidCredentialError):
    """Access token is not a well-formed signed blob with valid claims."""

    kind = "Malformed"
    default_message = "Malformed access token"


class BadSignatureError(InvalidCredentialError):
    """Access token signature does not match its contents."""

    kind = "BadSignature"
    default_message = "Invalid token signature"


class NotYetValidError(InvalidCredentialError):
    """Access token was issued in the future beyond the allowed skew."""

    kind = "NotYetValid"
    default_message = "Token not yet valid"


class ExpiredCredentialError(CredentialError):
    """Credential is past its expiry."""

    kind = "Expired"
    default_message = "Credential has expired"


class RevokedCredentialError(CredentialError):
    """Access token was revoked before its natural expiry."""

    kind = "Revoked"
    default_message = "Credential has been revoked"


__all__ = [
    "AuthServiceError",
    "ValidationFailedError",
    "BadCredentialsError",
    "ConflictEmailError",
    "NotFoundError",
    "ForbiddenError",
    "StorageError",
    "MalformedHashError",
    "DeadlineExceededError",
    "CredentialError",
    "InvalidCredentialError",
    "MalformedTokenError",
    "BadSignatureError",
    "NotYetValidError",
    "ExpiredCredentialError",
    "RevokedCredentialError",
]
