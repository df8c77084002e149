"""Unit tests for Redis idempotency store adapter."""

from unittest.mock import AsyncMock, patch

import pytest

from app.adapters.outbound.idempotency.redis_idempotency_store import RedisIdempotencyStore

FROM_URL = "app.adapters.outbound.idempotency.redis_idempotency_store.aioredis.from_url"
KEY = "calendly:invitee.created:https://api.calendly.com/invitees/IN1"


@pytest.fixture
def mock_redis_client():
    """Create a mock Redis client."""
    client = AsyncMock()
    client.exists = AsyncMock(return_value=0)
    client.get = AsyncMock(return_value=None)
    client.setex = AsyncMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def redis_store(mock_redis_client):
    """Create Redis idempotency store whose client is the mock."""
    with patch(FROM_URL, new_callable=AsyncMock) as mock_from_url:
        mock_from_url.return_value = mock_redis_client
        yield RedisIdempotencyStore("redis://localhost:6379/0")


@pytest.mark.asyncio
async def test_is_processed_returns_false_for_unknown_delivery(redis_store, mock_redis_client):
    assert await redis_store.is_processed(KEY) is False
    mock_redis_client.exists.assert_called_once_with(f"webhook:received:{KEY}")


@pytest.mark.asyncio
async def test_is_processed_returns_true_for_known_delivery(redis_store, mock_redis_client):
    mock_redis_client.exists.return_value = 1

    assert await redis_store.is_processed(KEY) is True


@pytest.mark.asyncio
async def test_mark_processed_stores_key_with_ttl(redis_store, mock_redis_client):
    await redis_store.mark_processed(KEY, ttl_seconds=3600)

    mock_redis_client.setex.assert_called_once_with(f"webhook:received:{KEY}", 3600, "1")


@pytest.mark.asyncio
async def test_store_and_get_event_id(redis_store, mock_redis_client):
    """The stored response is the inbox event id."""
    await redis_store.store_response(KEY, "evt-1", ttl_seconds=60)
    mock_redis_client.setex.assert_called_once_with(f"webhook:event_id:{KEY}", 60, "evt-1")

    mock_redis_client.get.return_value = "evt-1"
    assert await redis_store.get_response(KEY) == "evt-1"
    mock_redis_client.get.assert_called_once_with(f"webhook:event_id:{KEY}")


@pytest.mark.asyncio
async def test_client_is_created_once(redis_store, mock_redis_client):
    await redis_store.is_processed(KEY)
    await redis_store.get_response(KEY)

    assert redis_store._client is mock_redis_client


@pytest.mark.asyncio
async def test_close_resets_client(redis_store, mock_redis_client):
    await redis_store.is_processed(KEY)
    await redis_store.close()

    mock_redis_client.close.assert_called_once()
    assert redis_store._client is None
