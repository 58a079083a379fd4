"""Examples of using different storage backends."""

import json

import httpx

from setupguard import IdempotencyStore, RetryOrchestrator, retryable
from setupguard.stores import FileStore, MemoryStore, RemoteStore


def create_tenant(data: dict, context) -> dict:
    """Create a tenant (the side effect we never want twice)."""
    print(f"  → Creating tenant {data['subdomain']} (attempt {context.attempt})")
    return {"id": "ten_1", "subdomain": data["subdomain"]}


# Example 1: MemoryStore (default, single process only)
print("=" * 60)
print("Example 1: MemoryStore (in-memory, single process)")
print("=" * 60)

memory_orchestrator = RetryOrchestrator(store=IdempotencyStore(MemoryStore()))

# First call - executes
result1 = memory_orchestrator.execute(create_tenant, "signup-1:tenant", {"subdomain": "acme"})
print(f"First call result: {result1}")

# Second call - returns stored result
result2 = memory_orchestrator.execute(create_tenant, "signup-1:tenant", {"subdomain": "acme"})
print(f"Second call result: {result2}")

print()

# Example 2: FileStore (persistent, multi-process safe)
print("=" * 60)
print("Example 2: FileStore (persistent, multi-process safe)")
print("=" * 60)

file_store = FileStore("/tmp/setupguard_demo")
file_orchestrator = RetryOrchestrator(store=IdempotencyStore(file_store, ttl=300))


@retryable(orchestrator=file_orchestrator, name="tenant")
def create_tenant_file(data, context):
    return create_tenant(data, context)


# First call - executes
result1 = create_tenant_file({"subdomain": "acme"})
print(f"First call result: {result1}")

# Second call - returns stored result (even across process restarts!)
result2 = create_tenant_file({"subdomain": "acme"})
print(f"Second call result: {result2}")

print()

# Example 3: RedisStore (distributed, multi-server safe)
print("=" * 60)
print("Example 3: RedisStore (distributed, multi-server safe)")
print("=" * 60)

try:
    import redis

    from setupguard.stores import RedisStore

    redis_client = redis.Redis(host="localhost", port=6379, db=0)
    redis_client.ping()  # Test connection

    redis_orchestrator = RetryOrchestrator(
        store=IdempotencyStore(RedisStore(redis_client, prefix="myapp:"))
    )

    # First call - executes
    result1 = redis_orchestrator.execute(create_tenant, "signup-3:tenant", {"subdomain": "acme"})
    print(f"First call result: {result1}")

    # Second call - returns stored result
    result2 = redis_orchestrator.execute(create_tenant, "signup-3:tenant", {"subdomain": "acme"})
    print(f"Second call result: {result2}")

    print("\n✅ RedisStore example completed successfully!")

except ImportError:
    print("⚠️  Redis not installed. Install with: pip install setupguard[redis]")
except redis.exceptions.ConnectionError as e:
    print(f"⚠️  Redis not available: {e}")
    print("   Make sure Redis is running: redis-server")

print()

# Example 4: Local cache backed by the setup API
print("=" * 60)
print("Example 4: RemoteStore (results kept by the setup API)")
print("=" * 60)

remote_records = {}


def setup_api(request: httpx.Request) -> httpx.Response:
    """Minimal stand-in for GET/POST /setup/idempotency."""
    if request.method == "POST":
        body = json.loads(request.content)
        remote_records[body["idempotency_key"]] = body
        return httpx.Response(201, json={"ok": True})
    key = request.url.path.rsplit("/", 1)[-1]
    if key not in remote_records:
        return httpx.Response(404)
    return httpx.Response(200, json=remote_records[key])


client = httpx.Client(transport=httpx.MockTransport(setup_api), base_url="https://api.test")
remote = RemoteStore(client)

first_process = RetryOrchestrator(store=IdempotencyStore(MemoryStore(), remote=remote))
result1 = first_process.execute(create_tenant, "signup-4:tenant", {"subdomain": "acme"})
print(f"First process result: {result1}")

# A fresh process has an empty cache but finds the result remotely
second_process = RetryOrchestrator(store=IdempotencyStore(MemoryStore(), remote=remote))
result2 = second_process.execute(create_tenant, "signup-4:tenant", {"subdomain": "acme"})
print(f"Second process result: {result2}")

print()

print("""
Store Comparison:

┌─────────────┬────────────┬──────────────┬─────────────┐
│ Store       │ Persistent │ Multi-Process│ Multi-Server│
├─────────────┼────────────┼──────────────┼─────────────┤
│ MemoryStore │     ❌     │      ❌      │      ❌     │
│ FileStore   │     ✅     │      ✅      │      ❌     │
│ RedisStore  │     ✅     │      ✅      │      ✅     │
│ RemoteStore │     ✅     │      ✅      │      ✅     │
└─────────────┴────────────┴──────────────┴─────────────┘

RemoteStore is only consulted on a cache miss and never blocks a setup
when the API is down.
""")

# Cleanup
print("Cleaning up demo files...")
file_store.clear()
client.close()
