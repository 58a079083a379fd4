"""Exceptions for setup guard."""

from __future__ import annotations

import time
from urllib.parse import quote

import httpx

from .types import ConflictType

# Steps that can safely be re-run once earlier steps have succeeded.
RETRYABLE_STEPS = ("api_key_generation", "domain_configuration")

NETWORK_ERRORS = (
    httpx.TransportError,
    httpx.HTTPStatusError,
    ConnectionError,
    TimeoutError,
)


class SetupGuardError(Exception):
    """Base exception for setup guard errors."""


class SetupError(SetupGuardError):
    """Domain failure raised by a setup operation.

    Operations signal failures by raising this (or a subclass). The
    orchestrator only looks at three things: ``recoverable``,
    ``retry_delay`` and ``conflict``. Anything that is not a
    ``SetupError`` is treated as an unexpected error and is never retried.

    Args:
        message: Human readable description
        setup_step: Name of the step that failed
        completed_steps: Steps that finished before the failure
        recoverable: Force recoverability (derived from step and cause if None)
        retry_delay: Suggested base delay in seconds (derived if None)
        conflict: Conflict that caused this failure, if any
    """

    def __init__(
        self,
        message: str,
        setup_step: str = "unknown",
        completed_steps: tuple[str, ...] | list[str] = (),
        recoverable: bool | None = None,
        retry_delay: float | None = None,
        conflict: ConflictError | None = None,
    ) -> None:
        super().__init__(message)
        self.setup_step = setup_step
        self.completed_steps = tuple(completed_steps)
        self._recoverable = recoverable
        self._retry_delay = retry_delay
        self._conflict = conflict

    @classmethod
    def network_failure(
        cls,
        setup_step: str,
        reason: str,
        completed_steps: tuple[str, ...] | list[str] = (),
    ) -> SetupError:
        """Build a failure for a network/API error at any step.

        Raise it with ``from`` so the transport error becomes the cause.
        """
        return cls(
            f"Network failure during {setup_step}: {reason}",
            setup_step=setup_step,
            completed_steps=completed_steps,
        )

    @property
    def is_network_failure(self) -> bool:
        return isinstance(self.__cause__, NETWORK_ERRORS)

    @property
    def recoverable(self) -> bool:
        if self._recoverable is not None:
            return self._recoverable
        return self.setup_step in RETRYABLE_STEPS or self.is_network_failure

    @property
    def retry_delay(self) -> float | None:
        """Suggested base delay in seconds, or None to use the policy's."""
        if self._retry_delay is not None:
            return self._retry_delay
        if self.recoverable and self.is_network_failure:
            return min(300, 5 * 2 ** len(self.completed_steps))
        return None

    @property
    def conflict(self) -> ConflictError | None:
        if self._conflict is not None:
            return self._conflict
        if isinstance(self.__cause__, ConflictError):
            return self.__cause__
        return None

    def to_dict(self) -> dict[str, object]:
        conflict = self.conflict
        return {
            "type": "setup_failure",
            "message": str(self),
            "setup_step": self.setup_step,
            "completed_steps": list(self.completed_steps),
            "is_recoverable": self.recoverable,
            "is_network_failure": self.is_network_failure,
            "retry_delay": self.retry_delay,
            "conflict": conflict.to_dict() if conflict is not None else None,
            "timestamp": time.time(),
        }


class ConflictError(SetupError):
    """Raise when the target resource already exists (HTTP 409).

    Carries what is needed to adopt the existing resource instead of
    creating a new one.
    """

    def __init__(
        self,
        message: str,
        conflict_type: ConflictType | str,
        conflict_fields: list[str] | None = None,
        existing_resource_id: str | None = None,
        existing_values: dict[str, str] | None = None,
        resolution_suggestions: list[str] | None = None,
        retrieval_endpoint: str | None = None,
        setup_step: str = "unknown",
        recoverable: bool = True,
        retry_delay: float | None = None,
    ) -> None:
        super().__init__(
            message,
            setup_step=setup_step,
            recoverable=recoverable,
            retry_delay=retry_delay,
        )
        self.conflict_type = ConflictType.parse(conflict_type)
        self.conflict_fields = list(conflict_fields or [])
        self.existing_resource_id = existing_resource_id
        self.existing_values = dict(existing_values or {})
        self.resolution_suggestions = list(
            resolution_suggestions
            or [
                "Use checkExisting=true parameter to retrieve existing resource",
                "Add an idempotency key to safely retry the operation",
                "Check resource availability before attempting creation",
            ]
        )
        self._retrieval_endpoint = retrieval_endpoint

    @classmethod
    def email_exists(cls, email: str, existing_user_id: str | None = None) -> ConflictError:
        return cls(
            f"User with email '{email}' already exists",
            ConflictType.EMAIL_EXISTS,
            conflict_fields=["email"],
            existing_resource_id=existing_user_id,
            existing_values={"email": email},
            resolution_suggestions=[
                "Use checkExisting=true parameter to retrieve existing user",
                f"Call GET /users/by-email/{quote(email, safe='')}",
                "Use idempotency key to safely retry operation",
            ],
        )

    @classmethod
    def domain_exists(cls, domain: str, existing_tenant_id: str | None = None) -> ConflictError:
        return cls(
            f"Domain '{domain}' is already in use",
            ConflictType.DOMAIN_EXISTS,
            conflict_fields=["domain"],
            existing_resource_id=existing_tenant_id,
            existing_values={"domain": domain},
            resolution_suggestions=[
                "Use checkExisting=true parameter to retrieve existing tenant",
                f"Call GET /tenants/check-domain/{quote(domain, safe='')}",
                "Try alternative domain suggestions",
            ],
        )

    @classmethod
    def subdomain_exists(
        cls, subdomain: str, existing_tenant_id: str | None = None
    ) -> ConflictError:
        return cls(
            f"Subdomain '{subdomain}' is already in use",
            ConflictType.SUBDOMAIN_EXISTS,
            conflict_fields=["subdomain"],
            existing_resource_id=existing_tenant_id,
            existing_values={"subdomain": subdomain},
            resolution_suggestions=[
                "Use checkExisting=true parameter to retrieve existing tenant",
                f"Call GET /tenants/check-subdomain/{quote(subdomain, safe='')}",
                "Try alternative subdomain suggestions",
            ],
        )

    @classmethod
    def organization_exists(
        cls, name: str, existing_organization_id: str | None = None
    ) -> ConflictError:
        return cls(
            f"Organization '{name}' already exists",
            ConflictType.ORGANIZATION_EXISTS,
            conflict_fields=["name"],
            existing_resource_id=existing_organization_id,
            existing_values={"name": name},
        )

    @classmethod
    def from_payload(cls, payload: dict[str, object]) -> ConflictError:
        """Build a conflict from a 409 response body.

        Accepts the body itself or one wrapped in an ``error`` key.
        """
        body = payload.get("error", payload)
        if not isinstance(body, dict):
            body = payload
        resource_id = body.get("existing_resource_id")
        endpoint = body.get("retrieval_endpoint")
        return cls(
            str(body.get("message", "Resource conflict")),
            str(body.get("conflict_type", ConflictType.OTHER.value)),
            conflict_fields=list(body.get("conflict_fields") or []),
            existing_resource_id=str(resource_id) if resource_id else None,
            existing_values=dict(body.get("existing_values") or {}),
            resolution_suggestions=list(body.get("resolution_suggestions") or []),
            retrieval_endpoint=str(endpoint) if endpoint else None,
        )

    @property
    def conflict(self) -> ConflictError:
        return self

    @property
    def retrieval_endpoint(self) -> str | None:
        """Endpoint returning the existing resource, if it can be located."""
        if self._retrieval_endpoint:
            return self._retrieval_endpoint
        if not self.existing_resource_id:
            return None
        resource_id = quote(self.existing_resource_id, safe="")
        if self.conflict_type == ConflictType.EMAIL_EXISTS:
            return f"/users/{resource_id}"
        if self.conflict_type in (ConflictType.DOMAIN_EXISTS, ConflictType.SUBDOMAIN_EXISTS):
            return f"/tenants/{resource_id}"
        if self.conflict_type == ConflictType.ORGANIZATION_EXISTS:
            return f"/organizations/{resource_id}"
        return None

    @property
    def check_endpoint(self) -> str | None:
        """Availability check endpoint for the conflicting value."""
        field_name = {
            ConflictType.EMAIL_EXISTS: "email",
            ConflictType.DOMAIN_EXISTS: "domain",
            ConflictType.SUBDOMAIN_EXISTS: "subdomain",
        }.get(self.conflict_type)
        if field_name is None:
            return None
        return check_endpoint_for(field_name, self.existing_values.get(field_name, ""))

    @property
    def auto_resolvable(self) -> bool:
        return self.conflict_type.recoverable

    def to_dict(self) -> dict[str, object]:
        return {
            "type": "conflict",
            "message": str(self),
            "status_code": 409,
            "conflict_type": self.conflict_type.value,
            "conflict_fields": self.conflict_fields,
            "existing_values": self.existing_values,
            "existing_resource_id": self.existing_resource_id,
            "resolution_suggestions": self.resolution_suggestions,
            "auto_resolvable": self.auto_resolvable,
            "check_endpoint": self.check_endpoint,
            "retrieval_endpoint": self.retrieval_endpoint,
        }


def check_endpoint_for(field_name: str, value: str) -> str | None:
    """Map a conflicting field to its availability check endpoint."""
    prefix = {
        "email": "/users/check-email/",
        "domain": "/tenants/check-domain/",
        "subdomain": "/tenants/check-subdomain/",
    }.get(field_name)
    if prefix is None:
        return None
    return prefix + quote(value, safe="")


class RetryExhaustedError(SetupGuardError):
    """Raise when every attempt failed with a recoverable error."""

    def __init__(self, key: str, attempts: int, last_error: BaseException | None) -> None:
        self.key = key
        self.attempts = attempts
        self.last_error = last_error
        reason = str(last_error) if last_error is not None else "Unknown error"
        super().__init__(f"Setup '{key}' failed after {attempts} attempts: {reason}")


class RetryCancelledError(SetupGuardError):
    """Raise when a backoff wait is aborted by a cancel event or deadline."""

    def __init__(self, key: str, attempts: int, last_error: BaseException | None) -> None:
        self.key = key
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Setup '{key}' cancelled after {attempts} attempts")


class ResultNotPersistedError(SetupGuardError):
    """Raise when an operation succeeded but its result could not be stored.

    The side effect has happened; ``result`` holds what the operation
    returned. A later call with the same key runs the operation again.
    """

    def __init__(self, key: str, attempts: int, result: object, reason: str) -> None:
        self.key = key
        self.attempts = attempts
        self.result = result
        self.reason = reason
        super().__init__(
            f"Setup '{key}' succeeded on attempt {attempts} but its result "
            f"was not stored: {reason}"
        )


class SerializationError(SetupGuardError):
    """Raise when a result cannot be serialized for storage."""

    def __init__(self, value: object, reason: str) -> None:
        self.value = value
        self.reason = reason
        super().__init__(f"Cannot serialize result: {reason}")
