"""In-memory store implementation."""

import json
import threading
import time

from ..record import IdempotencyRecord
from .base import Store, dumps


class MemoryStore(Store):
    """Thread-safe in-memory store for idempotency records.

    Records are kept serialized, like in the persistent stores: results
    must be JSON-serializable and every get returns a fresh copy.

    Note: This store does NOT persist across processes or restarts.
    Use FileStore or RedisStore for multi-process scenarios.
    """

    def __init__(self) -> None:
        self._records: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()

    def _live(self, key: str) -> str | None:
        # Caller holds the lock.
        entry = self._records.get(key)
        if entry is None:
            return None

        payload, expires_at = entry
        if expires_at is not None and time.time() > expires_at:
            del self._records[key]
            return None
        return payload

    def get(self, key: str) -> IdempotencyRecord | None:
        """Retrieve a record, checking TTL expiration."""
        with self._lock:
            payload = self._live(key)
        if payload is None:
            return None
        return IdempotencyRecord.from_dict(json.loads(payload))

    def set(self, record: IdempotencyRecord, ttl: float | None = None) -> None:
        """Store a record with optional TTL."""
        payload = dumps(record)
        with self._lock:
            self._records[record.key] = (payload, _expiry(ttl))

    def add(self, record: IdempotencyRecord, ttl: float | None = None) -> bool:
        """Store a record unless a live one already exists."""
        payload = dumps(record)
        with self._lock:
            if self._live(record.key) is not None:
                return False
            self._records[record.key] = (payload, _expiry(ttl))
            return True

    def delete(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def clear(self) -> None:
        """Clear all records (useful for testing)."""
        with self._lock:
            self._records.clear()


def _expiry(ttl: float | None) -> float | None:
    return time.time() + ttl if ttl is not None else None
