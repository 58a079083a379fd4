"""Dataclasses for stored results and attempt history."""

import time
from dataclasses import dataclass, field

from setupguard.utils import ensure_float


@dataclass
class IdempotencyRecord:
    """A completed operation stored under its idempotency key.

    Attributes:
        key: Idempotency key of the operation
        result: Value returned by the operation (or synthesized by recovery)
        created_at: Timestamp when the result was stored
        recovery_type: Set when the result came from conflict recovery
    """

    key: str
    result: object = None
    created_at: float = field(default_factory=time.time)
    recovery_type: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Convert record to dictionary for serialization."""
        return {
            "key": self.key,
            "result": self.result,
            "created_at": self.created_at,
            "recovery_type": self.recovery_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "IdempotencyRecord":
        """Create record from dictionary."""
        recovery_type = data.get("recovery_type")
        return cls(
            key=str(data["key"]),
            result=data.get("result"),
            created_at=ensure_float(value=data.get("created_at"), default=time.time()),
            recovery_type=str(recovery_type) if recovery_type else None,
        )


@dataclass(frozen=True)
class RetryAttemptRecord:
    """One attempt made by the orchestrator. Observability only."""

    idempotency_key: str
    attempt: int
    success: bool
    timestamp: float = field(default_factory=time.time)
    error: str | None = None
    error_type: str | None = None
    recovery_type: str | None = None

    @classmethod
    def failed(cls, key: str, attempt: int, exc: BaseException) -> "RetryAttemptRecord":
        return cls(
            idempotency_key=key,
            attempt=attempt,
            success=False,
            error=str(exc),
            error_type=type(exc).__name__,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "idempotency_key": self.idempotency_key,
            "attempt": self.attempt,
            "success": self.success,
            "timestamp": self.timestamp,
            "error": self.error,
            "error_type": self.error_type,
            "recovery_type": self.recovery_type,
        }


@dataclass(frozen=True)
class RetryContext:
    """Passed to the operation on every attempt."""

    idempotency_key: str
    attempt: int
    max_attempts: int
    from_step: str | None = None
    started_at: float = field(default_factory=time.time)

    @property
    def is_retry(self) -> bool:
        return self.attempt > 1

    @property
    def is_last_attempt(self) -> bool:
        return self.attempt >= self.max_attempts
