"""User store contract and the in-process implementation.

The auth service only talks to the ``UserStore`` protocol. Production uses
``PostgresUserStore``; tests and single-process development use
``InMemoryUserStore``.
"""

import asyncio
from datetime import datetime
from typing import Protocol
from uuid import UUID

import structlog

from taskauth.models.user import RefreshCredential, User
from taskauth.services.errors import ConflictEmailError, NotFoundError

logger = structlog.get_logger(__name__)


class UserStore(Protocol):
    """Persistence contract for users and refresh credentials.

    All methods are coroutines so the caller's deadline and cancellation
    apply to them. Failures of the backing store raise ``StorageError``.
    """

    async def create_user(self, user: User) -> None:
        """Insert a user. Raises ConflictEmailError if the email is taken."""
        ...

    async def find_user_by_email(self, email: str) -> User:
        """Raises NotFoundError if no user has this (case-folded) email."""
        ...

    async def find_user_by_id(self, user_id: UUID) -> User:
        """Raises NotFoundError if the id is unknown."""
        ...

    async def update_user(self, user: User) -> None:
        """Replace a user's mutable fields. Raises NotFoundError if unknown."""
        ...

    async def save_refresh(self, record: RefreshCredential) -> None:
        ...

    async def find_refresh(self, token: str) -> RefreshCredential:
        """Raises NotFoundError if the handle is unknown."""
        ...

    async def revoke_refresh(self, token: str) -> bool:
        """Mark a refresh credential revoked.

        Idempotent. Returns True only for the call that moved the record
        from active to revoked. Raises NotFoundError if the handle is unknown.
        """
        ...

    async def rotate_refresh(self, old_token: str, new_record: RefreshCredential) -> bool:
        """Atomically revoke ``old_token`` and save ``new_record``.

        Returns False, saving nothing, when the old credential is unknown or
        already revoked.
        """
        ...

    async def prune_expired_refresh(self, now: datetime) -> int:
        """Delete refresh credentials with ``expires_at <= now``."""
        ...


class InMemoryUserStore:
    """Dict-backed store guarded by a single asyncio lock.

    Every mutation and every refresh read happens under the lock, so
    ``rotate_refresh`` is linearizable with concurrent ``find_refresh``.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._users_by_id: dict[UUID, User] = {}
        self._user_ids_by_email: dict[str, UUID] = {}
        self._refresh: dict[str, RefreshCredential] = {}

    async def create_user(self, user: User) -> None:
        async with self._lock:
            if user.email in self._user_ids_by_email:
                raise ConflictEmailError()
            self._users_by_id[user.id] = user.model_copy()
            self._user_ids_by_email[user.email] = user.id
        logger.info("user_created", user_id=str(user.id))

    async def find_user_by_email(self, email: str) -> User:
        async with self._lock:
            user_id = self._user_ids_by_email.get(email.strip().casefold())
            if user_id is None:
                raise NotFoundError("User not found")
            return self._users_by_id[user_id].model_copy()

    async def find_user_by_id(self, user_id: UUID) -> User:
        async with self._lock:
            user = self._users_by_id.get(user_id)
            if user is None:
                raise NotFoundError("User not found")
            return user.model_copy()

    async def update_user(self, user: User) -> None:
        async with self._lock:
            existing = self._users_by_id.get(user.id)
            if existing is None:
                raise NotFoundError("User not found")
            if user.email != existing.email:
                if user.email in self._user_ids_by_email:
                    raise ConflictEmailError()
                del self._user_ids_by_email[existing.email]
                self._user_ids_by_email[user.email] = user.id
            self._users_by_id[user.id] = user.model_copy()

    async def save_refresh(self, record: RefreshCredential) -> None:
        async with self._lock:
            self._refresh[record.token] = record.model_copy()

    async def find_refresh(self, token: str) -> RefreshCredential:
        async with self._lock:
            record = self._refresh.get(token)
            if record is None:
                raise NotFoundError("Refresh credential not found")
            return record.model_copy()

    async def revoke_refresh(self, token: str) -> bool:
        async with self._lock:
            record = self._refresh.get(token)
            if record is None:
                raise NotFoundError("Refresh credential not found")
            if record.revoked:
                return False
            record.revoked = True
            return True

    async def rotate_refresh(self, old_token: str, new_record: RefreshCredential) -> bool:
        async with self._lock:
            old = self._refresh.get(old_token)
            if old is None or old.revoked:
                return False
            old.revoked = True
            self._refresh[new_record.token] = new_record.model_copy()
            return True

    async def prune_expired_refresh(self, now: datetime) -> int:
        async with self._lock:
            expired = [t for t, r in self._refresh.items() if r.expires_at <= now]
            for token in expired:
                del self._refresh[token]
        return len(expired)
