"""httpx helpers for talking to the setup API."""

import logging

import httpx

from .exceptions import ConflictError

logger = logging.getLogger(__name__)


def get_data(response: httpx.Response) -> object:
    """Return the response payload, unwrapping a top-level ``data`` key."""
    body = response.json()
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body


def raise_for_conflict(response: httpx.Response) -> None:
    """Raise ConflictError for a 409 response carrying conflict details."""
    if response.status_code != httpx.codes.CONFLICT:
        return
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}
    raise ConflictError.from_payload(payload)


class HttpResourceFetcher:
    """Read-only fetch of an existing resource by endpoint.

    Used by the conflict resolver. Endpoints are relative to the
    client's ``base_url``.

    Args:
        client: Configured httpx client (auth, base URL, timeouts)
    """

    def __init__(self, client: httpx.Client) -> None:
        self.client = client

    def __call__(self, endpoint: str) -> dict:
        logger.debug(f"Fetching existing resource: {endpoint}")
        response = self.client.get(endpoint)
        response.raise_for_status()

        data = get_data(response)
        if not isinstance(data, dict):
            raise ValueError(f"Expected an object from {endpoint}, got {type(data).__name__}")
        return data
