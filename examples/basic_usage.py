"""Basic usage examples for setup guard."""

from setupguard import (
    ConflictError,
    ConflictResolver,
    RetryOrchestrator,
    RetryPolicy,
    SetupError,
    retryable,
)

# Pretend remote service: resources that already exist
EXISTING = {
    "/users/usr_1": {"id": "usr_1", "email": "ana@acme.test", "organization_id": "org_1"},
}

orchestrator = RetryOrchestrator(
    policy=RetryPolicy(max_attempts=3, base_delay=1.0, jitter_fraction=0.0),
    resolver=ConflictResolver(EXISTING.__getitem__),
)


# Example 1: Idempotent setup step
@retryable(orchestrator=orchestrator, key=lambda data: f"signup:{data['signup_id']}")
def create_organization(data, context):
    """Create the organization for a signup."""
    print(f"🏢 Creating organization {data['name']} (attempt {context.attempt})")
    return {"id": "org_1", "name": data["name"]}


# Example 2: Transient failure, retried with backoff
@retryable(orchestrator=orchestrator)
def configure_domain(data, context):
    """Point the tenant's domain at the platform."""
    if context.attempt == 1:
        print("🌐 DNS provider timed out")
        raise SetupError("DNS provider timeout", setup_step="domain_configuration")
    print(f"🌐 Domain {data['domain']} configured")
    return {"domain": data["domain"], "verified": True}


# Example 3: Conflict recovered from the existing resource
@retryable(orchestrator=orchestrator)
def create_admin_user(data, context):
    """Create the first user; the email was registered by an earlier run."""
    print(f"👤 Creating user {data['email']}")
    raise ConflictError.email_exists(data["email"], "usr_1")


if __name__ == "__main__":
    print("=" * 60)
    print("Example 1: Idempotent Setup Step")
    print("=" * 60)

    signup = {"signup_id": "7f3a", "name": "Acme"}
    result1 = create_organization(signup)
    print(f"Result: {result1}\n")

    print("Calling again with the same signup...")
    result2 = create_organization(signup)
    print(f"Result: {result2}")
    print("Notice: The organization was not created twice!\n")

    print("=" * 60)
    print("Example 2: Retry With Backoff")
    print("=" * 60)

    result = configure_domain({"domain": "acme.test"})
    print(f"Result: {result}\n")

    print("=" * 60)
    print("Example 3: Conflict Recovery")
    print("=" * 60)

    result = create_admin_user({"email": "ana@acme.test", "organization_id": "org_1"})
    print(f"Recovery: {result['recovery_type']}")
    print(f"Existing user: {result['existing_resource']}\n")

    print("=" * 60)
    print("Retry Statistics")
    print("=" * 60)

    stats = orchestrator.get_retry_stats()
    print(f"Attempts: {stats['total_attempts']} ({stats['success_rate']:.0f}% successful)")

    # Non-recoverable failures are raised immediately
    def choose_plan(data, context):
        raise SetupError("Unknown plan 'platinum'", setup_step="plan_selection")

    try:
        orchestrator.execute(choose_plan, "signup-bad", {"plan": "platinum"})
    except SetupError as e:
        print(f"❌ Error: {e}")
        print("This is expected - validation errors are never retried!")
