"""Setup Guard - Idempotent retries and conflict recovery for setup workflows.

Runs multi-step provisioning operations (organization, domain, first
user...) against a remote service so that retries never create
duplicates and "already exists" conflicts adopt the existing resource.

Example:
    orchestrator = RetryOrchestrator()

    def create_organization(data, context):
        return api.create_organization(data)

    result = orchestrator.execute(create_organization, "signup-7f3a", data)
"""

from .backoff import base_delay_for, next_delay
from .conflict import ConflictDescriptor, ConflictResolver, classify
from .decorator import retryable
from .exceptions import (
    ConflictError,
    ResultNotPersistedError,
    RetryCancelledError,
    RetryExhaustedError,
    SerializationError,
    SetupError,
    SetupGuardError,
)
from .http import HttpResourceFetcher
from .idempotency import IdempotencyStore
from .orchestrator import RetryOrchestrator
from .policy import RetryPolicy
from .record import IdempotencyRecord, RetryAttemptRecord, RetryContext
from .stores import MemoryStore, Store
from .types import ConflictType

__version__ = "0.1.0"

__all__ = [
    "RetryOrchestrator",
    "retryable",
    "RetryPolicy",
    "RetryContext",
    "RetryAttemptRecord",
    "IdempotencyStore",
    "IdempotencyRecord",
    "ConflictType",
    "ConflictDescriptor",
    "ConflictResolver",
    "classify",
    "HttpResourceFetcher",
    "next_delay",
    "base_delay_for",
    "SetupGuardError",
    "SetupError",
    "ConflictError",
    "RetryExhaustedError",
    "RetryCancelledError",
    "ResultNotPersistedError",
    "SerializationError",
    "Store",
    "MemoryStore",
]
