"""Authentication service: the credential lifecycle state machine.

Session states for a user::

    anonymous --login--> active(A, R)
    active(A, R) --refresh--> active(A', R')      R is consumed
    active(A, R) --logout--> terminated           A revoked, R revoked
    active(A, R) --A expires--> refresh-only(R)
    refresh-only(R) --refresh--> active(A', R')
    refresh-only(R) --R expires--> terminated

Refresh handles are single-use: rotation revokes the presented handle with a
compare-and-set, so of several concurrent refreshes of one handle exactly
one wins and the rest see ``Invalid``.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar
from uuid import UUID, uuid4

import structlog

from taskauth.models.auth import Principal, TokenPair
from taskauth.models.user import Role, User
from taskauth.services.clock import Clock, SystemClock
from taskauth.services.errors import (
    BadCredentialsError,
    ConflictEmailError,
    CredentialError,
    DeadlineExceededError,
    ExpiredCredentialError,
    InvalidCredentialError,
    NotFoundError,
    RevokedCredentialError,
    StorageError,
    ValidationFailedError,
)
from taskauth.services.password_hasher import MAX_PASSWORD_BYTES, PasswordHasher
from taskauth.services.revocation_index import RevocationIndex
from taskauth.services.token_codec import TokenCodec
from taskauth.services.user_store import UserStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")

MIN_PASSWORD_LENGTH = 8
MAX_EMAIL_LENGTH = 320
MAX_USERNAME_LENGTH = 100


async def _within(operation: Awaitable[T], timeout: Optional[float]) -> T:
    """Await an operation under an optional deadline (seconds)."""
    if timeout is None:
        return await operation
    try:
        return await asyncio.wait_for(operation, timeout)
    except asyncio.TimeoutError:
        logger.warning("auth_operation_deadline_exceeded", timeout=timeout)
        raise DeadlineExceededError()


def _normalize_email(email: str) -> str:
    return email.strip().casefold()


def validate_registration(email: str, username: str, password: str) -> None:
    """Check registration input.

    Raises:
        ValidationFailedError: On the first rule that fails
    """
    if "@" not in email or "." not in email:
        raise ValidationFailedError("Invalid email format")
    if len(_normalize_email(email)) > MAX_EMAIL_LENGTH:
        raise ValidationFailedError(f"Email must be at most {MAX_EMAIL_LENGTH} characters")
    if not username.strip():
        raise ValidationFailedError("Username is required")
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValidationFailedError(f"Username must be at most {MAX_USERNAME_LENGTH} characters")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailedError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailedError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")


class AuthService:
    """Orchestrates register/login/refresh/logout/authenticate.

    Every public operation takes an optional ``timeout`` in seconds. When it
    elapses the operation raises DeadlineExceededError; a store mutation that
    already committed is not rolled back. asyncio cancellation propagates
    unchanged with the same guarantee.
    """

    def __init__(
        self,
        *,
        store: UserStore,
        hasher: PasswordHasher,
        codec: TokenCodec,
        revocations: RevocationIndex,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.revocations = revocations
        self.clock = clock or SystemClock()
        # Built up front so an unknown-email login costs one bcrypt check,
        # exactly like a wrong password
        self._dummy_hash = hasher.hash_sync(uuid4().hex)

    # --------- Registration ----------

    async def register(
        self,
        email: str,
        username: str,
        password: str,
        *,
        timeout: Optional[float] = None,
    ) -> User:
        """Create a user with role ``user``.

        Raises:
            ValidationFailedError, ConflictEmailError, StorageError
        """
        return await _within(self._register(email, username, password, Role.USER), timeout)

    async def _register(self, email: str, username: str, password: str, role: Role) -> User:
        validate_registration(email, username, password)
        password_hash = await self.hasher.hash(password)
        now = self.clock.now()
        user = User(
            id=uuid4(),
            email=_normalize_email(email),
            username=username.strip(),
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        await self.store.create_user(user)
        logger.info("user_registered", user_id=str(user.id), role=role.value)
        return user

    # --------- Login ----------

    async def login(
        self,
        email: str,
        password: str,
        *,
        timeout: Optional[float] = None,
    ) -> TokenPair:
        """Exchange email + password for an access/refresh pair.

        Raises:
            BadCredentialsError, StorageError
        """
        return await _within(self._login(email, password), timeout)

    async def _login(self, email: str, password: str) -> TokenPair:
        try:
            user = await self.store.find_user_by_email(_normalize_email(email))
        except NotFoundError:
            # Spend the same bcrypt time as a real check so unknown emails
            # cannot be told apart from wrong passwords.
            await self.hasher.verify(password, self._dummy_hash)
            logger.info("login_failed", reason="unknown_email")
            raise BadCredentialsError()

        if not await self.hasher.verify(password, user.password_hash):
            logger.info("login_failed", reason="wrong_password", user_id=str(user.id))
            raise BadCredentialsError()

        access_token = self.codec.generate_access(user)
        refresh_token, record = self.codec.generate_refresh(user)
        await self.store.save_refresh(record)

        logger.info("user_logged_in", user_id=str(user.id))
        return self._token_pair(access_token, refresh_token)

    # --------- Refresh ----------

    async def refresh(
        self,
        refresh_token: str,
        *,
        timeout: Optional[float] = None,
    ) -> TokenPair:
        """Rotate a refresh handle into a new access/refresh pair.

        Raises:
            InvalidCredentialError: Unknown, already-used, or orphaned handle
            ExpiredCredentialError: Handle past its expiry
            StorageError
        """
        return await _within(self._refresh(refresh_token), timeout)

    async def _refresh(self, refresh_token: str) -> TokenPair:
        try:
            record = await self.store.find_refresh(refresh_token)
        except NotFoundError:
            logger.warning("refresh_token_not_found")
            raise InvalidCredentialError("Invalid refresh token")

        if record.revoked:
            logger.warning("refresh_token_reused", user_id=str(record.user_id))
            raise InvalidCredentialError("Invalid refresh token")

        if record.expires_at <= self.clock.now():
            logger.info("refresh_token_expired", user_id=str(record.user_id))
            raise ExpiredCredentialError("Refresh token has expired")

        try:
            user = await self.store.find_user_by_id(record.user_id)
        except NotFoundError:
            logger.warning("refresh_token_orphaned", user_id=str(record.user_id))
            raise InvalidCredentialError("Invalid refresh token")

        new_refresh, new_record = self.codec.generate_refresh(user)
        if not await self.store.rotate_refresh(refresh_token, new_record):
            # Lost a race with another refresh (or a logout) of the same handle
            logger.warning("refresh_token_race_lost", user_id=str(user.id))
            raise InvalidCredentialError("Invalid refresh token")

        access_token = self.codec.generate_access(user)
        logger.info("refresh_rotated", user_id=str(user.id))
        return self._token_pair(access_token, new_refresh)

    # --------- Logout ----------

    async def logout(
        self,
        access_token: str,
        refresh_token: str,
        *,
        timeout: Optional[float] = None,
    ) -> None:
        """Revoke the presented access token and refresh handle.

        Best effort: an expired or otherwise invalid access token, or an
        unknown refresh handle, does not fail the logout.
        """
        await _within(self._logout(access_token, refresh_token), timeout)

    async def _logout(self, access_token: str, refresh_token: str) -> None:
        user_id: Optional[str] = None
        failure: Optional[StorageError] = None

        # Both revocations are attempted even if one store is down; the
        # first storage failure is raised once the other has been tried.
        try:
            await self.store.revoke_refresh(refresh_token)
        except NotFoundError:
            logger.info("logout_refresh_not_found")
        except StorageError as e:
            logger.error("logout_refresh_revoke_failed")
            failure = e

        try:
            claims = self.codec.validate_access(access_token)
        except CredentialError as e:
            logger.info("logout_access_not_revocable", reason=e.kind)
        else:
            user_id = str(claims.sub)
            try:
                await self.revocations.revoke(claims.jti, claims.exp)
            except StorageError as e:
                logger.error("logout_access_revoke_failed", user_id=user_id, jti=claims.jti)
                failure = failure or e
            else:
                logger.info("access_revoked", user_id=user_id, jti=claims.jti)

        if failure is not None:
            raise failure
        logger.info("logout_completed", user_id=user_id)

    # --------- Authentication ----------

    async def authenticate(
        self,
        access_token: str,
        *,
        timeout: Optional[float] = None,
    ) -> Principal:
        """Resolve an access token to a principal.

        Raises:
            MalformedTokenError, BadSignatureError, ExpiredCredentialError,
            NotYetValidError: From the codec
            RevokedCredentialError: If the token was logged out
        """
        return await _within(self._authenticate(access_token), timeout)

    async def _authenticate(self, access_token: str) -> Principal:
        claims = self.codec.validate_access(access_token)
        if await self.revocations.is_revoked(claims.jti):
            raise RevokedCredentialError()
        return Principal.from_claims(claims)

    # --------- User management ----------

    async def get_user(self, user_id: UUID, *, timeout: Optional[float] = None) -> User:
        """Raises NotFoundError if the user does not exist."""
        return await _within(self.store.find_user_by_id(user_id), timeout)

    async def change_role(
        self,
        user_id: UUID,
        role: Role,
        *,
        timeout: Optional[float] = None,
    ) -> User:
        """Set a user's role. Tokens already issued keep their old role
        until they expire."""
        return await _within(self._change_role(user_id, role), timeout)

    async def _change_role(self, user_id: UUID, role: Role) -> User:
        user = await self.store.find_user_by_id(user_id)
        if user.role == role:
            return user
        updated = user.model_copy(update={"role": role, "updated_at": self.clock.now()})
        await self.store.update_user(updated)
        logger.info(
            "user_role_changed",
            user_id=str(user_id),
            old_role=user.role.value,
            new_role=role.value,
        )
        return updated

    async def ensure_admin(self, email: str, username: str, password: str) -> User:
        """Create the first-run admin account, or promote an existing user."""
        try:
            return await self._register(email, username, password, Role.ADMIN)
        except ConflictEmailError:
            existing = await self.store.find_user_by_email(_normalize_email(email))
            return await self._change_role(existing.id, Role.ADMIN)

    # --------- Helpers ----------

    def _token_pair(self, access_token: str, refresh_token: str) -> TokenPair:
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=self.codec.access_ttl_seconds,
        )
