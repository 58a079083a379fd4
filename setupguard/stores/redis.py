"""Redis-based store implementation with atomic operations."""

import json
from typing import TYPE_CHECKING

from ..record import IdempotencyRecord
from .base import Store, dumps

if TYPE_CHECKING:
    from redis import Redis


class RedisStore(Store):
    """Redis-based store for idempotency records.

    Uses SET NX for atomic set-if-absent writes and native key expiry
    for TTLs. Safe for multi-process and multi-server scenarios.

    Args:
        client: Redis client instance
        prefix: Key prefix for namespacing (default: "setupguard:")
    """

    def __init__(self, client: "Redis", prefix: str = "setupguard:") -> None:
        self.client = client
        self.prefix = prefix

    def _key(self, key: str) -> str:
        """Add prefix to key."""
        return f"{self.prefix}{key}"

    def get(self, key: str) -> IdempotencyRecord | None:
        """Retrieve a record from Redis."""
        data = self.client.get(self._key(key))
        if data is None:
            return None

        try:
            return IdempotencyRecord.from_dict(json.loads(data))
        except (json.JSONDecodeError, KeyError):
            return None

    def set(self, record: IdempotencyRecord, ttl: float | None = None) -> None:
        """Store a record in Redis with optional TTL."""
        self.client.set(self._key(record.key), dumps(record), px=_millis(ttl))

    def add(self, record: IdempotencyRecord, ttl: float | None = None) -> bool:
        """Store a record only if the key does not exist (SET NX)."""
        written = self.client.set(
            self._key(record.key), dumps(record), nx=True, px=_millis(ttl)
        )
        return bool(written)

    def delete(self, key: str) -> None:
        self.client.delete(self._key(key))

    def clear(self) -> None:
        """Clear all records with this prefix (useful for testing)."""
        pattern = f"{self.prefix}*"
        cursor = 0

        while True:
            cursor, keys = self.client.scan(cursor, match=pattern, count=100)
            if keys:
                self.client.delete(*keys)
            if cursor == 0:
                break


def _millis(ttl: float | None) -> int | None:
    if ttl is None:
        return None
    return max(1, int(ttl * 1000))
