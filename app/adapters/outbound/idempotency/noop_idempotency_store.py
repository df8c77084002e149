"""No-op idempotency store adapter for when the Redis fast path is disabled."""

from typing import Optional

from app.application.ports.idempotency_store import IdempotencyStore


class NoOpIdempotencyStore(IdempotencyStore):
    """Never reports a key as seen; the inbox unique constraint still deduplicates."""

    async def is_processed(self, key: str) -> bool:
        return False

    async def mark_processed(self, key: str, ttl_seconds: int) -> None:
        pass

    async def get_response(self, key: str) -> Optional[str]:
        return None

    async def store_response(self, key: str, response: str, ttl_seconds: int) -> None:
        pass
