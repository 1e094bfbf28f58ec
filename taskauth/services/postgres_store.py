"""PostgreSQL-backed user store."""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator
from uuid import UUID

import asyncpg
import structlog

from taskauth.database import get_pool
from taskauth.models.user import RefreshCredential, Role, User
from taskauth.services.errors import ConflictEmailError, NotFoundError, StorageError

logger = structlog.get_logger(__name__)

_USER_COLUMNS = "id, email, username, password_hash, role, created_at, updated_at"
_REFRESH_COLUMNS = "token, user_id, issued_at, expires_at, revoked"


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        username=row["username"],
        password_hash=row["password_hash"],
        role=Role(row["role"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_refresh(row) -> RefreshCredential:
    return RefreshCredential(
        token=row["token"],
        user_id=row["user_id"],
        issued_at=row["issued_at"],
        expires_at=row["expires_at"],
        revoked=row["revoked"],
    )


@asynccontextmanager
async def _storage_errors(operation: str) -> AsyncIterator[None]:
    """Translate driver failures into StorageError, logging the details."""
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, RuntimeError) as e:
        logger.error("storage_operation_failed", operation=operation, error=str(e))
        raise StorageError() from e


class PostgresUserStore:
    """User store over the ``users`` and ``refresh_credentials`` tables.

    Email uniqueness is enforced by a unique index. Refresh revocation is a
    conditional UPDATE (``revoked = FALSE``) so only one caller can win it.
    """

    async def create_user(self, user: User) -> None:
        """Insert a user row.

        Raises:
            ConflictEmailError: If the email is already registered
            StorageError: If the insert fails for any other reason
        """
        async with _storage_errors("create_user"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                try:
                    await conn.execute(
                        """
                        INSERT INTO users (id, email, username, password_hash, role, created_at, updated_at)
                        VALUES ($1, $2, $3, $4, $5, $6, $7)
                        """,
                        user.id,
                        user.email,
                        user.username,
                        user.password_hash,
                        user.role.value,
                        user.created_at,
                        user.updated_at,
                    )
                except asyncpg.UniqueViolationError:
                    raise ConflictEmailError()

        logger.info("user_created", user_id=str(user.id), role=user.role.value)

    async def find_user_by_email(self, email: str) -> User:
        async with _storage_errors("find_user_by_email"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_USER_COLUMNS} FROM users WHERE email = $1",
                    email.strip().casefold(),
                )

        if row is None:
            raise NotFoundError("User not found")
        return _row_to_user(row)

    async def find_user_by_id(self, user_id: UUID) -> User:
        async with _storage_errors("find_user_by_id"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
                    user_id,
                )

        if row is None:
            raise NotFoundError("User not found")
        return _row_to_user(row)

    async def update_user(self, user: User) -> None:
        async with _storage_errors("update_user"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                try:
                    updated_id = await conn.fetchval(
                        """
                        UPDATE users
                        SET email = $2, username = $3, password_hash = $4, role = $5, updated_at = $6
                        WHERE id = $1
                        RETURNING id
                        """,
                        user.id,
                        user.email,
                        user.username,
                        user.password_hash,
                        user.role.value,
                        user.updated_at,
                    )
                except asyncpg.UniqueViolationError:
                    raise ConflictEmailError()

        if updated_id is None:
            raise NotFoundError("User not found")

    async def save_refresh(self, record: RefreshCredential) -> None:
        async with _storage_errors("save_refresh"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                await conn.execute(
                    f"""
                    INSERT INTO refresh_credentials ({_REFRESH_COLUMNS})
                    VALUES ($1, $2, $3, $4, $5)
                    """,
                    record.token,
                    record.user_id,
                    record.issued_at,
                    record.expires_at,
                    record.revoked,
                )

    async def find_refresh(self, token: str) -> RefreshCredential:
        async with _storage_errors("find_refresh"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_REFRESH_COLUMNS} FROM refresh_credentials WHERE token = $1",
                    token,
                )

        if row is None:
            raise NotFoundError("Refresh credential not found")
        return _row_to_refresh(row)

    async def revoke_refresh(self, token: str) -> bool:
        async with _storage_errors("revoke_refresh"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    revoked = await conn.fetchval(
                        """
                        UPDATE refresh_credentials
                        SET revoked = TRUE
                        WHERE token = $1 AND revoked = FALSE
                        RETURNING token
                        """,
                        token,
                    )
                    if revoked is not None:
                        return True
                    exists = await conn.fetchval(
                        "SELECT 1 FROM refresh_credentials WHERE token = $1",
                        token,
                    )

        if exists is None:
            raise NotFoundError("Refresh credential not found")
        return False

    async def rotate_refresh(self, old_token: str, new_record: RefreshCredential) -> bool:
        async with _storage_errors("rotate_refresh"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    revoked = await conn.fetchval(
                        """
                        UPDATE refresh_credentials
                        SET revoked = TRUE
                        WHERE token = $1 AND revoked = FALSE
                        RETURNING token
                        """,
                        old_token,
                    )
                    if revoked is None:
                        return False
                    await conn.execute(
                        f"""
                        INSERT INTO refresh_credentials ({_REFRESH_COLUMNS})
                        VALUES ($1, $2, $3, $4, $5)
                        """,
                        new_record.token,
                        new_record.user_id,
                        new_record.issued_at,
                        new_record.expires_at,
                        new_record.revoked,
                    )
        return True

    async def prune_expired_refresh(self, now: datetime) -> int:
        async with _storage_errors("prune_expired_refresh"):
            pool = await get_pool()
            async with pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM refresh_credentials WHERE expires_at <= $1",
                    now,
                )

        # asyncpg returns the command tag, e.g. "DELETE 3"
        return int(result.split()[-1])
