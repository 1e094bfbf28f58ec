"""Unit tests for Redis connection management."""

from unittest.mock import AsyncMock, patch

import pytest

from taskauth.services import redis_service


@pytest.fixture(autouse=True)
def reset_client(monkeypatch):
    """Each test starts without a cached client."""
    monkeypatch.setattr(redis_service, "_redis_client", None)


@pytest.fixture
def mock_redis_client():
    return AsyncMock()


class TestGetRedis:
    async def test_connects_and_caches(self, mock_redis_client):
        with patch(
            "taskauth.services.redis_service.redis.from_url", return_value=mock_redis_client
        ) as mock_from_url:
            first = await redis_service.get_redis()
            second = await redis_service.get_redis()

        assert first is mock_redis_client
        assert second is mock_redis_client
        mock_from_url.assert_called_once()
        mock_redis_client.ping.assert_awaited_once()

    async def test_unreachable_returns_none(self, mock_redis_client):
        mock_redis_client.ping.side_effect = ConnectionError("refused")

        with patch(
            "taskauth.services.redis_service.redis.from_url", return_value=mock_redis_client
        ):
            assert await redis_service.get_redis() is None

        assert redis_service._redis_client is None


class TestCloseRedis:
    async def test_closes_cached_client(self, mock_redis_client, monkeypatch):
        monkeypatch.setattr(redis_service, "_redis_client", mock_redis_client)

        await redis_service.close_redis()

        mock_redis_client.aclose.assert_awaited_once()
        assert redis_service._redis_client is None

    async def test_noop_without_client(self):
        await redis_service.close_redis()
