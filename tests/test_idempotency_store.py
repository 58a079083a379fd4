"""Tests for the cache + remote idempotency store and the httpx helpers."""

import json
import time

import httpx
import pytest

from setupguard import ConflictError, ConflictType, HttpResourceFetcher, IdempotencyStore
from setupguard.http import get_data, raise_for_conflict
from setupguard.record import IdempotencyRecord
from setupguard.stores import MemoryStore, RemoteStore


class FakeSetupApi:
    """In-memory stand-in for the setup API's idempotency endpoints."""

    def __init__(self, fail_with=None):
        self.records = {}
        self.requests = []
        self.fail_with = fail_with

    def __call__(self, request):
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with)
        if request.method == "POST":
            body = json.loads(request.content)
            self.records[body["idempotency_key"]] = body
            return httpx.Response(201, json={"ok": True})
        key = request.url.path.rsplit("/", 1)[-1]
        if key not in self.records:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=self.records[key])


def make_client(handler):
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="https://api.test")


def test_cache_hit_skips_remote():
    api = FakeSetupApi()
    cache = MemoryStore()
    cache.set(IdempotencyRecord(key="k1", result={"id": "org_42"}))
    store = IdempotencyStore(cache, remote=RemoteStore(make_client(api)))

    assert store.get("k1") == {"id": "org_42"}
    assert api.requests == []


def test_remote_hit_warms_cache():
    """Test that a result persisted by another process is found and cached."""
    api = FakeSetupApi()
    api.records["k1"] = {"status": "completed", "data": {"id": "org_42"}}
    cache = MemoryStore()
    store = IdempotencyStore(cache, remote=RemoteStore(make_client(api)))

    assert store.has("k1")
    assert cache.get("k1").result == {"id": "org_42"}


def test_remote_miss():
    api = FakeSetupApi()
    store = IdempotencyStore(MemoryStore(), remote=RemoteStore(make_client(api)))

    assert store.lookup("k1") is None
    assert len(api.requests) == 1


def test_remote_pending_is_not_a_result():
    api = FakeSetupApi()
    api.records["k1"] = {"status": "in_progress", "data": None}
    store = IdempotencyStore(MemoryStore(), remote=RemoteStore(make_client(api)))

    assert store.lookup("k1") is None


def test_remote_failure_is_a_miss(caplog):
    """Test that remote errors are logged and treated as a miss."""
    store = IdempotencyStore(
        MemoryStore(), remote=RemoteStore(make_client(FakeSetupApi(fail_with=500)))
    )

    assert store.lookup("k1") is None
    assert "Failed to check idempotency key 'k1'" in caplog.text


def test_save_persists_remotely():
    api = FakeSetupApi()
    cache = MemoryStore()
    store = IdempotencyStore(cache, remote=RemoteStore(make_client(api)))

    record = store.save("k1", {"id": "org_1"})

    assert record.result == {"id": "org_1"}
    assert cache.get("k1").result == {"id": "org_1"}
    assert api.records["k1"]["status"] == "completed"
    assert api.records["k1"]["data"] == {"id": "org_1"}


def test_save_survives_remote_failure():
    """Test that the local result is kept when remote persistence fails."""
    cache = MemoryStore()
    store = IdempotencyStore(
        cache, remote=RemoteStore(make_client(FakeSetupApi(fail_with=503)))
    )

    store.save("k1", {"id": "org_1"})

    assert cache.get("k1").result == {"id": "org_1"}


def test_save_keeps_first_result():
    cache = MemoryStore()
    store = IdempotencyStore(cache)

    store.save("k1", {"id": "first"})
    record = store.save("k1", {"id": "second"})

    assert record.result == {"id": "first"}


def test_ttl_applies_to_cache():
    cache = MemoryStore()
    store = IdempotencyStore(cache, ttl=0.05)

    store.save("k1", {"id": "org_1"})
    assert store.get("k1") == {"id": "org_1"}

    time.sleep(0.1)
    assert store.get("k1") is None


def test_fetcher_unwraps_data():
    def handler(request):
        assert request.url.path == "/users/usr_1"
        return httpx.Response(200, json={"data": {"id": "usr_1"}})

    fetch = HttpResourceFetcher(make_client(handler))

    assert fetch("/users/usr_1") == {"id": "usr_1"}


def test_fetcher_raises_on_error_status():
    fetch = HttpResourceFetcher(make_client(lambda request: httpx.Response(404)))

    with pytest.raises(httpx.HTTPStatusError):
        fetch("/users/usr_1")


def test_get_data_plain_body():
    response = httpx.Response(200, json={"id": "ten_1"})

    assert get_data(response) == {"id": "ten_1"}


def test_raise_for_conflict():
    """Test turning a 409 response into a ConflictError."""
    response = httpx.Response(
        409,
        json={
            "message": "User with email 'ana@acme.test' already exists",
            "conflict_type": "email_exists",
            "existing_resource_id": "usr_1",
        },
    )

    with pytest.raises(ConflictError) as exc_info:
        raise_for_conflict(response)

    assert exc_info.value.conflict_type == ConflictType.EMAIL_EXISTS
    assert exc_info.value.retrieval_endpoint == "/users/usr_1"

    # Other statuses pass through
    raise_for_conflict(httpx.Response(201, json={}))
