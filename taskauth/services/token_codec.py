"""Signed access tokens and opaque refresh handles.

Access tokens are self-verifying HS256 JWTs (``header.payload.signature``)
so the request path never touches storage. Refresh handles carry no claims;
they are random keys into the user store, which makes rotation and
revocation a single row update.
"""

import secrets
from datetime import timedelta
from typing import Optional

import jwt
import structlog
from pydantic import ValidationError

from taskauth.models.auth import AccessClaims
from taskauth.models.user import RefreshCredential, User
from taskauth.services.clock import Clock, SystemClock
from taskauth.services.errors import (
    BadSignatureError,
    ExpiredCredentialError,
    MalformedTokenError,
    NotYetValidError,
)

logger = structlog.get_logger(__name__)

# Constants
JWT_ALGORITHM = "HS256"
CLOCK_SKEW_SECONDS = 60
JTI_BYTES = 16  # 128 bits
REFRESH_HANDLE_BYTES = 32  # 256 bits
REQUIRED_CLAIMS = ["sub", "role", "iat", "exp", "jti"]


class TokenCodec:
    """Encodes and validates access tokens, and mints refresh handles."""

    def __init__(
        self,
        secret: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        clock: Optional[Clock] = None,
    ):
        if not secret:
            raise ValueError("TokenCodec requires a non-empty secret")
        if access_ttl_seconds <= 0 or refresh_ttl_seconds <= 0:
            raise ValueError("Token lifetimes must be positive")
        self._secret = secret
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds
        self.clock = clock or SystemClock()

    def _now_ts(self) -> int:
        return int(self.clock.now().timestamp())

    # --------- Access tokens ----------

    def encode_claims(self, claims: AccessClaims) -> str:
        """Sign a set of claims into a compact token."""
        return jwt.encode(
            claims.model_dump(mode="json"),
            self._secret,
            algorithm=JWT_ALGORITHM,
        )

    def decode_claims(self, token: str) -> AccessClaims:
        """Verify the signature and parse the claims, without time checks.

        Raises:
            BadSignatureError: If the signature does not match or the alg is not HS256
            MalformedTokenError: If the token or its claims cannot be parsed
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except jwt.InvalidSignatureError:
            raise BadSignatureError()
        except jwt.InvalidAlgorithmError:
            raise BadSignatureError("Unexpected token algorithm")
        except jwt.InvalidTokenError as e:
            raise MalformedTokenError(f"Malformed access token: {e}")

        try:
            return AccessClaims.model_validate(payload)
        except ValidationError:
            raise MalformedTokenError("Malformed access token claims")

    def generate_access(self, user: User) -> str:
        """Create a signed access token for a user.

        Args:
            user: The user the token is issued to

        Returns:
            Encoded token string
        """
        now = self._now_ts()
        claims = AccessClaims(
            sub=user.id,
            role=user.role,
            iat=now,
            exp=now + self.access_ttl_seconds,
            jti=secrets.token_hex(JTI_BYTES),
        )
        token = self.encode_claims(claims)
        logger.debug(
            "access_token_created",
            user_id=str(user.id),
            jti=claims.jti,
            expires_in=self.access_ttl_seconds,
        )
        return token

    def validate_access(self, token: str) -> AccessClaims:
        """Decode and validate an access token.

        ``exp`` is strict. ``iat`` may be up to CLOCK_SKEW_SECONDS in the
        future to absorb clock drift between issuing instances.

        Returns:
            The token's claims

        Raises:
            MalformedTokenError, BadSignatureError, ExpiredCredentialError,
            NotYetValidError
        """
        claims = self.decode_claims(token)
        now = self._now_ts()
        if claims.exp <= now:
            raise ExpiredCredentialError("Access token has expired")
        if claims.iat > now + CLOCK_SKEW_SECONDS:
            raise NotYetValidError()
        return claims

    # --------- Refresh handles ----------

    def generate_refresh(self, user: User) -> tuple[str, RefreshCredential]:
        """Mint a refresh handle and the record to persist for it.

        Returns:
            Tuple of (handle, record)
        """
        handle = secrets.token_urlsafe(REFRESH_HANDLE_BYTES)
        now = self.clock.now()
        record = RefreshCredential(
            token=handle,
            user_id=user.id,
            issued_at=now,
            expires_at=now + timedelta(seconds=self.refresh_ttl_seconds),
        )
        return handle, record
