"""Redis idempotency store adapter."""

from typing import Optional

from redis import asyncio as aioredis

from app.application.ports.idempotency_store import IdempotencyStore


class RedisIdempotencyStore(IdempotencyStore):
    """Redis fast path for webhook deduplication.

    Keys are ``{source}:{external_event_id}``; the stored response is the id of
    the inbox row created for the first delivery.
    """

    KEY_PREFIX = "webhook:received:"
    RESPONSE_KEY_PREFIX = "webhook:event_id:"

    def __init__(self, redis_url: str) -> None:
        self._redis_url = redis_url
        self._client: Optional[aioredis.Redis] = None

    async def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = await aioredis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    def _make_key(self, key: str) -> str:
        return f"{self.KEY_PREFIX}{key}"

    def _make_response_key(self, key: str) -> str:
        return f"{self.RESPONSE_KEY_PREFIX}{key}"

    async def is_processed(self, key: str) -> bool:
        """
        Check if a webhook delivery has already been received.

        Args:
            key: Source-qualified external event id

        Returns:
            True if the key is known, False otherwise
        """
        client = await self._get_client()
        exists = await client.exists(self._make_key(key))
        return exists > 0

    async def mark_processed(self, key: str, ttl_seconds: int) -> None:
        client = await self._get_client()
        await client.setex(self._make_key(key), ttl_seconds, "1")

    async def get_response(self, key: str) -> Optional[str]:
        """
        Get the inbox event id recorded for a delivery.

        Args:
            key: Source-qualified external event id

        Returns:
            Stored event id, or None if it expired or was never stored
        """
        client = await self._get_client()
        return await client.get(self._make_response_key(key))

    async def store_response(self, key: str, response: str, ttl_seconds: int) -> None:
        client = await self._get_client()
        await client.setex(self._make_response_key(key), ttl_seconds, response)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None
