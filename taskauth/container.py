"""Component wiring.

Components are built leaves first from the settings: hasher and codec, then
the stores, then the auth service and the sweeper that depend on them.
"""

from dataclasses import dataclass
from typing import Optional

from taskauth.config import Settings
from taskauth.services.auth_service import AuthService
from taskauth.services.clock import Clock, SystemClock
from taskauth.services.password_hasher import PasswordHasher
from taskauth.services.postgres_store import PostgresUserStore
from taskauth.services.revocation_index import (
    InMemoryRevocationIndex,
    RedisRevocationIndex,
    RevocationIndex,
)
from taskauth.services.sweeper_service import CredentialSweeper
from taskauth.services.token_codec import TokenCodec
from taskauth.services.user_store import InMemoryUserStore, UserStore


@dataclass
class Container:
    settings: Settings
    clock: Clock
    hasher: PasswordHasher
    codec: TokenCodec
    store: UserStore
    revocations: RevocationIndex
    auth_service: AuthService
    sweeper: CredentialSweeper


def build_container(settings: Settings, *, clock: Optional[Clock] = None) -> Container:
    """Construct every component for the configured backends."""
    clock = clock or SystemClock()

    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    codec = TokenCodec(
        secret=settings.jwt_secret,
        access_ttl_seconds=settings.access_ttl_seconds,
        refresh_ttl_seconds=settings.refresh_ttl_seconds,
        clock=clock,
    )

    if settings.storage_backend == "postgres":
        store: UserStore = PostgresUserStore()
    else:
        store = InMemoryUserStore()

    if settings.revocation_backend == "redis":
        revocations: RevocationIndex = RedisRevocationIndex(clock)
    else:
        revocations = InMemoryRevocationIndex()

    auth_service = AuthService(
        store=store,
        hasher=hasher,
        codec=codec,
        revocations=revocations,
        clock=clock,
    )
    sweeper = CredentialSweeper(
        revocations=revocations,
        store=store,
        interval_seconds=settings.revocation_sweep_interval_seconds,
        clock=clock,
    )

    return Container(
        settings=settings,
        clock=clock,
        hasher=hasher,
        codec=codec,
        store=store,
        revocations=revocations,
        auth_service=auth_service,
        sweeper=sweeper,
    )
