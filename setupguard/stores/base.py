"""Base store interface for idempotency records."""

import json
from abc import ABC, abstractmethod

from ..exceptions import SerializationError
from ..record import IdempotencyRecord


class Store(ABC):
    """Abstract base class for idempotency stores.

    Stores are responsible for:
    - Persisting completed results
    - Providing atomic set-if-absent writes
    - Managing TTL/expiration
    """

    @abstractmethod
    def get(self, key: str) -> IdempotencyRecord | None:
        """Retrieve a record by key.

        Args:
            key: The idempotency key

        Returns:
            Record if found and not expired, None otherwise
        """

    @abstractmethod
    def set(self, record: IdempotencyRecord, ttl: float | None = None) -> None:
        """Store a record, replacing any existing one.

        Args:
            record: The record to store
            ttl: Time-to-live in seconds (None = no expiration)
        """

    @abstractmethod
    def add(self, record: IdempotencyRecord, ttl: float | None = None) -> bool:
        """Store a record only if the key is absent (or expired).

        Must be atomic: of two concurrent writers for the same key,
        exactly one gets True.

        Args:
            record: The record to store
            ttl: Time-to-live in seconds (None = no expiration)

        Returns:
            True if the record was written, False if one already existed
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete a record.

        Args:
            key: The idempotency key
        """

    @abstractmethod
    def clear(self) -> None:
        """Remove every record (useful for testing)."""

    def has(self, key: str) -> bool:
        """Check whether a live record exists for the key."""
        return self.get(key) is not None


def dumps(record: IdempotencyRecord, **extra: object) -> str:
    """Serialize a record to JSON.

    Raises:
        SerializationError: If the result is not JSON-serializable
    """
    data = record.to_dict()
    data.update(extra)
    try:
        return json.dumps(data)
    except (TypeError, ValueError) as e:
        raise SerializationError(record.result, str(e)) from e
