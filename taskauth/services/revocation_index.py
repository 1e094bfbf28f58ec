"""Revocation index for access tokens invalidated before their expiry.

Access tokens are stateless, so logout needs a side channel: the token's
``jti`` is recorded here until its ``exp`` passes. A single-instance
deployment keeps the index in process; a fleet shares it through Redis so a
logout on one instance is honored by all.
"""

import threading
from datetime import datetime
from typing import Optional, Protocol

import redis.asyncio as redis
import structlog

from taskauth.services.errors import StorageError
from taskauth.services.redis_service import get_redis

logger = structlog.get_logger(__name__)

REDIS_KEY_PREFIX = "revoked_jti:"


class RevocationIndex(Protocol):
    async def revoke(self, jti: str, exp: int) -> None: ...

    async def is_revoked(self, jti: str) -> bool: ...

    async def sweep(self, now: datetime) -> int: ...


class InMemoryRevocationIndex:
    """Process-local ``jti -> exp`` map.

    Readers never block: a dict membership test is atomic. Writers (revoke
    and sweep) serialize on a lock so a sweep never drops a concurrent write.
    """

    def __init__(self):
        self._entries: dict[str, int] = {}
        self._write_lock = threading.Lock()

    async def revoke(self, jti: str, exp: int) -> None:
        with self._write_lock:
            current = self._entries.get(jti)
            if current is None or exp > current:
                self._entries[jti] = exp

    async def is_revoked(self, jti: str) -> bool:
        return jti in self._entries

    async def sweep(self, now: datetime) -> int:
        """Drop entries whose ``exp`` is at or before ``now``."""
        cutoff = int(now.timestamp())
        with self._write_lock:
            expired = [jti for jti, exp in self._entries.items() if exp <= cutoff]
            for jti in expired:
                del self._entries[jti]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class RedisRevocationIndex:
    """Fleet-wide index on Redis using ``SET key EX ttl`` + ``EXISTS``.

    Keys expire on their own at the token's ``exp``, so ``sweep`` has
    nothing to do. Lookups fail closed: if Redis cannot answer,
    ``is_revoked`` raises StorageError instead of admitting the token.
    """

    def __init__(self, clock, client: Optional[redis.Redis] = None):
        self._clock = clock
        self._client = client

    async def _get_client(self) -> redis.Redis:
        client = self._client or await get_redis()
        if client is None:
            raise StorageError("Revocation index unavailable")
        return client

    async def revoke(self, jti: str, exp: int) -> None:
        ttl = exp - int(self._clock.now().timestamp())
        if ttl <= 0:
            # Already expired; validation rejects it without our help
            return
        client = await self._get_client()
        try:
            await client.set(f"{REDIS_KEY_PREFIX}{jti}", "1", ex=ttl)
        except redis.RedisError as e:
            logger.error("redis_revoke_failed", error=str(e), jti=jti)
            raise StorageError() from e

    async def is_revoked(self, jti: str) -> bool:
        client = await self._get_client()
        try:
            return await client.exists(f"{REDIS_KEY_PREFIX}{jti}") > 0
        except redis.RedisError as e:
            logger.error("redis_is_revoked_failed", error=str(e), jti=jti)
            raise StorageError() from e

    async def sweep(self, now: datetime) -> int:
        return 0
