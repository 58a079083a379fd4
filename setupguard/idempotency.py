"""Idempotency store: local cache with a remote persistence fallback."""

import logging

import httpx

from .record import IdempotencyRecord
from .stores.base import Store
from .stores.remote import RemoteStore

DEFAULT_TTL = 3600.0


class IdempotencyStore:
    """Maps idempotency keys to the results of completed operations.

    The cache is authoritative for atomicity (``Store.add``); the remote
    store is best-effort: failures are logged and never raised.

    Args:
        cache: Local store (memory, file, redis...)
        remote: Optional remote persistence, consulted on cache miss
        ttl: Lifetime of cached records in seconds
        logger: Logger to use instead of the module logger
    """

    def __init__(
        self,
        cache: Store,
        remote: RemoteStore | None = None,
        ttl: float | None = DEFAULT_TTL,
        logger: logging.Logger | None = None,
    ) -> None:
        self.cache = cache
        self.remote = remote
        self.ttl = ttl
        self.logger = logger or logging.getLogger(__name__)

    def lookup(self, key: str) -> IdempotencyRecord | None:
        """Find a stored result for the key, warming the cache on a remote hit."""
        record = self.cache.get(key)
        if record is not None or self.remote is None:
            return record

        try:
            record = self.remote.get(key)
        except (httpx.HTTPError, ValueError) as e:
            self.logger.warning(f"Failed to check idempotency key '{key}' remotely: {e}")
            return None

        if record is not None:
            self.cache.set(record, ttl=self.ttl)
        return record

    def has(self, key: str) -> bool:
        return self.lookup(key) is not None

    def get(self, key: str) -> object:
        """Return the stored result, or None."""
        record = self.lookup(key)
        return record.result if record is not None else None

    def save(
        self,
        key: str,
        result: object,
        recovery_type: str | None = None,
    ) -> IdempotencyRecord:
        """Store a result unless one is already stored for the key.

        Returns:
            The record that is stored for the key after the call. When a
            concurrent invocation won the write, that is its record.
        """
        record = IdempotencyRecord(key=key, result=result, recovery_type=recovery_type)

        if not self.cache.add(record, ttl=self.ttl):
            existing = self.cache.get(key)
            if existing is not None:
                self.logger.warning(
                    f"Result for '{key}' was already stored by a concurrent invocation"
                )
                return existing
            # Expired between add() and get(); ours is as good as any.
            self.cache.set(record, ttl=self.ttl)

        if self.remote is not None:
            try:
                self.remote.set(record, ttl=self.ttl)
            except (httpx.HTTPError, TypeError, ValueError) as e:
                self.logger.warning(f"Failed to store result for '{key}' remotely: {e}")

        return record
