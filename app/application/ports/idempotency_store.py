"""Idempotency store port."""

from abc import ABC, abstractmethod
from typing import Optional


class IdempotencyStore(ABC):
    """Port interface for the webhook deduplication fast path."""

    @abstractmethod
    async def is_processed(self, key: str) -> bool:
        """
        Check if a key has been processed.

        Args:
            key: Source-qualified external event id

        Returns:
            True if the key has been processed, False otherwise
        """
        pass

    @abstractmethod
    async def mark_processed(self, key: str, ttl_seconds: int) -> None:
        """
        Mark a key as processed with a TTL.

        Args:
            key: Source-qualified external event id
            ttl_seconds: Time-to-live in seconds
        """
        pass

    @abstractmethod
    async def get_response(self, key: str) -> Optional[str]:
        """
        Get stored response for a key.

        Args:
            key: Source-qualified external event id

        Returns:
            Stored inbox event id, or None if not found
        """
        pass

    @abstractmethod
    async def store_response(self, key: str, response: str, ttl_seconds: int) -> None:
        """
        Store response for a key with a TTL.

        Args:
            key: Source-qualified external event id
            response: Inbox event id to store
            ttl_seconds: Time-to-live in seconds
        """
        pass
