"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing the app
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("REVOCATION_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-unit-tests")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from taskauth.config import Settings  # noqa: E402
from taskauth.container import Container, build_container  # noqa: E402

JWT_SECRET = "test-secret-key-for-jwt-unit-tests"
ACCESS_TTL_SECONDS = 900


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    """Settings for an in-memory deployment with a cheap bcrypt work factor."""
    return Settings(
        _env_file=None,
        storage_backend="memory",
        revocation_backend="memory",
        jwt_secret=JWT_SECRET,
        jwt_expiry_seconds=ACCESS_TTL_SECONDS,
        jwt_refresh_hours=168,
        bcrypt_rounds=4,
        revocation_sweep_interval_seconds=3600,
        admin_email=None,
        admin_password=None,
    )


@pytest.fixture
def container(settings: Settings, clock: FakeClock) -> Container:
    return build_container(settings, clock=clock)


@pytest.fixture
def app(settings: Settings, container: Container):
    from taskauth.main import create_app

    return create_app(settings, container)


@pytest.fixture
def client(app) -> Generator:
    """TestClient running the app lifespan against in-memory components."""
    from fastapi.testclient import TestClient

    with TestClient(app) as tc:
        yield tc


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for concurrent request tests (no lifespan)."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
