"""Remote persistence of idempotency results through the setup API."""

from datetime import datetime, timezone
from urllib.parse import quote

import httpx

from ..record import IdempotencyRecord


class RemoteStore:
    """Idempotency results kept by the remote service.

    Consulted when the local cache misses, so a completed setup survives
    restarts of the calling process. Errors are raised to the caller;
    IdempotencyStore treats this store as best-effort.

    Args:
        client: httpx client pointed at the setup API
        path: Collection path for idempotency records
    """

    def __init__(self, client: httpx.Client, path: str = "/setup/idempotency") -> None:
        self.client = client
        self.path = path.rstrip("/")

    def get(self, key: str) -> IdempotencyRecord | None:
        """Fetch a completed result, or None if unknown or not completed."""
        response = self.client.get(f"{self.path}/{quote(key, safe='')}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        response.raise_for_status()

        body = response.json()
        if isinstance(body, dict) and "status" not in body and isinstance(body.get("data"), dict):
            body = body["data"]
        if not isinstance(body, dict) or body.get("status") != "completed":
            return None

        return IdempotencyRecord(key=key, result=body.get("data"))

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def set(self, record: IdempotencyRecord, ttl: float | None = None) -> None:
        """Persist a completed result. The service owns retention, so ttl is unused."""
        created_at = datetime.fromtimestamp(record.created_at, tz=timezone.utc)
        response = self.client.post(
            self.path,
            json={
                "idempotency_key": record.key,
                "status": "completed",
                "data": record.result,
                "created_at": created_at.isoformat(),
            },
        )
        response.raise_for_status()
