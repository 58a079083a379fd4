"""File-based store implementation with cross-process locking."""

import fcntl
import hashlib
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..record import IdempotencyRecord
from .base import Store, dumps


class FileStore(Store):
    """File-based store for idempotency records.

    Uses JSON files for persistence and fcntl for cross-process locking.
    Safe for multi-process scenarios (e.g., gunicorn workers, celery).

    Args:
        directory: Path to directory for storing records
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _safe_key(self, key: str) -> str:
        # Distinct keys map to distinct files of bounded name length
        return hashlib.sha256(key.encode()).hexdigest()

    def _record_path(self, key: str) -> Path:
        """Get file path for a record."""
        return self.directory / f"{self._safe_key(key)}.json"

    def _lock_path(self, key: str) -> Path:
        """Get lock file path for a key."""
        return self.directory / f"{self._safe_key(key)}.lock"

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        """Hold an exclusive cross-process lock on the key."""
        fd = os.open(self._lock_path(key), os.O_CREAT | os.O_RDWR)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _read(self, key: str) -> IdempotencyRecord | None:
        record_path = self._record_path(key)

        if not record_path.exists():
            return None

        try:
            with open(record_path) as f:
                data = json.load(f)
        except (json.JSONDecodeError, FileNotFoundError):
            return None

        # Check TTL expiration
        expires_at = data.pop("expires_at", None)
        if expires_at is not None and time.time() > expires_at:
            record_path.unlink(missing_ok=True)
            return None

        try:
            record = IdempotencyRecord.from_dict(data)
        except KeyError:
            return None
        if record.key != key:
            return None
        return record

    def _write(self, record: IdempotencyRecord, ttl: float | None) -> None:
        record_path = self._record_path(record.key)
        expires_at = time.time() + ttl if ttl is not None else None
        payload = dumps(record, expires_at=expires_at)

        # Write atomically using temp file + rename
        temp_path = record_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            f.write(payload)
        temp_path.replace(record_path)

    def get(self, key: str) -> IdempotencyRecord | None:
        """Retrieve a record, checking TTL expiration."""
        return self._read(key)

    def set(self, record: IdempotencyRecord, ttl: float | None = None) -> None:
        """Store a record with optional TTL."""
        with self._locked(record.key):
            self._write(record, ttl)

    def add(self, record: IdempotencyRecord, ttl: float | None = None) -> bool:
        """Store a record unless a live one exists, under the key's file lock."""
        with self._locked(record.key):
            if self._read(record.key) is not None:
                return False
            self._write(record, ttl)
            return True

    def delete(self, key: str) -> None:
        """Delete a record and its lock file."""
        self._record_path(key).unlink(missing_ok=True)
        self._lock_path(key).unlink(missing_ok=True)

    def clear(self) -> None:
        """Clear all records and locks (useful for testing)."""
        for path in self.directory.glob("*.json"):
            path.unlink(missing_ok=True)
        for path in self.directory.glob("*.lock"):
            path.unlink(missing_ok=True)
