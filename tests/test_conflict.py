"""Tests for conflict classification and recovery."""

import logging

import pytest

from setupguard import (
    ConflictError,
    ConflictResolver,
    ConflictType,
    RetryExhaustedError,
    RetryOrchestrator,
    RetryPolicy,
    SetupError,
    classify,
)
from setupguard.conflict import ConflictDescriptor


class FakeApi:
    """Read-only resource lookups keyed by endpoint."""

    def __init__(self, resources=None, error=None):
        self.resources = resources or {}
        self.error = error
        self.calls = []

    def __call__(self, endpoint):
        self.calls.append(endpoint)
        if self.error is not None:
            raise self.error
        return self.resources[endpoint]


USER = {"id": "usr_1", "email": "ana@acme.test", "organization_id": "org_1"}
TENANT = {"id": "ten_1", "domain": "acme.test", "organization_id": "org_1"}
ORGANIZATION = {"id": "org_1", "name": "Acme"}


def test_classify_conflict_error():
    """Test that a raised conflict is described with its endpoint."""
    descriptor = classify(ConflictError.email_exists("ana@acme.test", "usr_1"))

    assert descriptor.conflict_type == ConflictType.EMAIL_EXISTS
    assert descriptor.existing_resource_id == "usr_1"
    assert descriptor.retrieval_endpoint == "/users/usr_1"
    assert descriptor.can_auto_resolve


def test_classify_chained_conflict():
    """Test that a conflict chained with 'raise from' is found."""
    try:
        try:
            raise ConflictError.domain_exists("acme.test", "ten_1")
        except ConflictError as conflict:
            raise SetupError("tenant creation failed", recoverable=True) from conflict
    except SetupError as e:
        descriptor = classify(e)

    assert descriptor.conflict_type == ConflictType.DOMAIN_EXISTS
    assert descriptor.retrieval_endpoint == "/tenants/ten_1"


def test_classify_without_conflict():
    """Test that ordinary failures are not auto-resolvable."""
    assert classify(SetupError("timeout")).conflict_type == ConflictType.OTHER
    assert not classify(SetupError("timeout")).can_auto_resolve
    assert not classify(ValueError("boom")).can_auto_resolve


def test_classify_missing_resource_id():
    """Test that a conflict without an existing id can't be resolved."""
    descriptor = classify(ConflictError.email_exists("ana@acme.test"))

    assert descriptor.conflict_type == ConflictType.EMAIL_EXISTS
    assert descriptor.retrieval_endpoint is None
    assert not descriptor.can_auto_resolve


def test_unknown_conflict_type_is_other():
    """Test that unknown tags parse to OTHER."""
    conflict = ConflictError("taken", "api_key_exists", existing_resource_id="key_1",
                             retrieval_endpoint="/api-keys/key_1")

    assert conflict.conflict_type == ConflictType.OTHER
    assert not classify(conflict).can_auto_resolve


def test_resolve_user():
    """Test recovery from an email conflict."""
    api = FakeApi({"/users/usr_1": USER})
    resolver = ConflictResolver(api)
    descriptor = ConflictDescriptor(ConflictType.EMAIL_EXISTS, "usr_1", "/users/usr_1")

    result = resolver.resolve(descriptor, {"email": "ana@acme.test", "organization_id": "org_1"})

    assert result["success"] is True
    assert result["recovery_type"] == "user_recovered"
    assert result["existing_resource"] == USER
    assert result["original_setup_data"]["email"] == "ana@acme.test"
    assert isinstance(result["recovered_at"], float)
    assert api.calls == ["/users/usr_1"]


def test_resolve_user_other_organization():
    """Test that a user from another organization is not adopted."""
    resolver = ConflictResolver(FakeApi({"/users/usr_1": USER}))
    descriptor = ConflictDescriptor(ConflictType.EMAIL_EXISTS, "usr_1", "/users/usr_1")

    assert resolver.resolve(descriptor, {"organization_id": "org_2"}) is None


@pytest.mark.parametrize("conflict_type", [ConflictType.DOMAIN_EXISTS, ConflictType.SUBDOMAIN_EXISTS])
def test_resolve_tenant(conflict_type):
    """Test recovery from domain and subdomain conflicts."""
    resolver = ConflictResolver(FakeApi({"/tenants/ten_1": TENANT}))
    descriptor = ConflictDescriptor(conflict_type, "ten_1", "/tenants/ten_1")

    result = resolver.resolve(descriptor, {"domain": "acme.test"})

    assert result["recovery_type"] == "tenant_recovered"
    assert result["existing_resource"]["id"] == "ten_1"


def test_resolve_tenant_other_organization():
    resolver = ConflictResolver(FakeApi({"/tenants/ten_1": TENANT}))
    descriptor = ConflictDescriptor(ConflictType.DOMAIN_EXISTS, "ten_1", "/tenants/ten_1")

    assert resolver.resolve(descriptor, {"organization_id": "org_9"}) is None


def test_resolve_organization():
    resolver = ConflictResolver(FakeApi({"/organizations/org_1": ORGANIZATION}))
    descriptor = ConflictDescriptor(
        ConflictType.ORGANIZATION_EXISTS, "org_1", "/organizations/org_1"
    )

    result = resolver.resolve(descriptor, {"name": "Acme"})

    assert result["recovery_type"] == "organization_recovered"


def test_resolve_fetch_failure_is_logged(caplog):
    """Test that fetch errors are swallowed and logged."""
    api = FakeApi(error=ConnectionError("connection refused"))
    resolver = ConflictResolver(api)
    descriptor = ConflictDescriptor(ConflictType.EMAIL_EXISTS, "usr_1", "/users/usr_1")

    with caplog.at_level(logging.ERROR):
        assert resolver.resolve(descriptor, {}) is None

    assert "connection refused" in caplog.text


def test_resolve_unresolvable_descriptor():
    """Test that OTHER conflicts never hit the API."""
    api = FakeApi()
    resolver = ConflictResolver(api)

    assert resolver.resolve(ConflictDescriptor(ConflictType.OTHER, "x", "/x"), {}) is None
    assert api.calls == []


def test_check_resource_exists():
    """Test the pre-flight availability check."""
    api = FakeApi({
        "/users/check-email/ana%40acme.test": {"available": False, "existing_resource": USER},
        "/tenants/check-subdomain/acme": {"available": True},
    })
    resolver = ConflictResolver(api)

    assert resolver.check_resource_exists("user", {"email": "ana@acme.test"}) == USER
    assert resolver.check_resource_exists("tenant", {"subdomain": "acme"}) is None
    assert resolver.check_resource_exists("invoice", {"id": "1"}) is None


def test_check_resource_exists_failure():
    resolver = ConflictResolver(FakeApi(error=ConnectionError("down")))

    assert resolver.check_resource_exists("tenant", {"domain": "acme.test"}) is None


def test_orchestrator_recovers_email_conflict():
    """Test that execute returns the recovered user instead of retrying."""
    sleeps = []
    api = FakeApi({"/users/usr_1": USER})
    orchestrator = RetryOrchestrator(
        policy=RetryPolicy(max_attempts=3),
        resolver=ConflictResolver(api),
        sleep=sleeps.append,
    )
    calls = 0

    def create_admin(data, context):
        nonlocal calls
        calls += 1
        raise ConflictError.email_exists(data["email"], "usr_1")

    data = {"email": "ana@acme.test", "organization_id": "org_1"}
    result = orchestrator.execute(create_admin, "signup-1", data)

    assert result["recovery_type"] == "user_recovered"
    assert result["existing_resource"]["id"] == "usr_1"
    assert calls == 1
    assert sleeps == []

    # Recovered results are stored like any other success
    assert orchestrator.store.get("signup-1") == result
    assert [(r.success, r.recovery_type) for r in orchestrator.history] == [
        (False, None),
        (True, "user_recovered"),
    ]


def test_orchestrator_retries_when_recovery_fails():
    """Test that a failed recovery falls back to the normal retry path."""
    sleeps = []
    api = FakeApi({"/users/usr_1": USER})
    orchestrator = RetryOrchestrator(
        policy=RetryPolicy(max_attempts=3),
        resolver=ConflictResolver(api),
        sleep=sleeps.append,
    )

    def create_admin(data, context):
        raise ConflictError.email_exists(data["email"], "usr_1")

    with pytest.raises(RetryExhaustedError) as exc_info:
        orchestrator.execute(
            create_admin, "signup-1", {"email": "ana@acme.test", "organization_id": "org_2"}
        )

    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, ConflictError)
    assert len(sleeps) == 2
    assert len(api.calls) == 2


def test_conflict_error_endpoints():
    """Test the endpoints derived for each conflict type."""
    email = ConflictError.email_exists("ana@acme.test", "usr_1")
    assert email.check_endpoint == "/users/check-email/ana%40acme.test"
    assert email.retrieval_endpoint == "/users/usr_1"

    domain = ConflictError.domain_exists("acme.test", "ten_1")
    assert domain.check_endpoint == "/tenants/check-domain/acme.test"
    assert domain.retrieval_endpoint == "/tenants/ten_1"

    organization = ConflictError.organization_exists("Acme", "org_1")
    assert organization.check_endpoint is None
    assert organization.retrieval_endpoint == "/organizations/org_1"


def test_conflict_from_payload():
    """Test parsing a 409 body."""
    conflict = ConflictError.from_payload({
        "error": {
            "message": "Subdomain 'acme' is already in use",
            "conflict_type": "subdomain_exists",
            "existing_resource_id": "ten_7",
            "existing_values": {"subdomain": "acme"},
        }
    })

    assert conflict.conflict_type == ConflictType.SUBDOMAIN_EXISTS
    assert conflict.retrieval_endpoint == "/tenants/ten_7"
    assert conflict.recoverable
    assert conflict.to_dict()["auto_resolvable"] is True
