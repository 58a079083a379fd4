"""Decorator running a setup function through a retry orchestrator."""

import functools
import inspect
from collections.abc import Callable
from typing import TypeVar

from .key import generate_key
from .orchestrator import RetryOrchestrator

F = TypeVar("F", bound=Callable)


def retryable(
    orchestrator: RetryOrchestrator | None = None,
    key: Callable[[object], str] | None = None,
    name: str | None = None,
) -> Callable[[F], F]:
    """Decorator to run a setup operation with retries and idempotency.

    The decorated function keeps the operation signature
    ``func(input_data, context)``; callers invoke it as
    ``func(input_data, idempotency_key=None, **execute_options)``.

    Args:
        orchestrator: Orchestrator to run through (defaults to a new one
            with an in-memory store)
        key: Custom key function computing the idempotency key from input_data
        name: Namespace for generated keys

    Example:
        @retryable(key=lambda data: f"signup:{data['signup_id']}")
        def provision(data, context):
            return client.post("/organizations", json=data).json()

        provision({"signup_id": "7f3a", "name": "Acme"})
    """
    _orchestrator = orchestrator or RetryOrchestrator()

    def decorator(func: F) -> F:
        def resolve_key(input_data: object, idempotency_key: str | None) -> str:
            return idempotency_key or generate_key(
                func, input_data, custom_key_func=key, name=name
            )

        if inspect.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(
                input_data: object, idempotency_key: str | None = None, **options: object
            ) -> object:
                return await _orchestrator.execute_async(
                    func, resolve_key(input_data, idempotency_key), input_data, **options
                )

            async_wrapper.orchestrator = _orchestrator  # type: ignore[attr-defined]
            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def wrapper(
            input_data: object, idempotency_key: str | None = None, **options: object
        ) -> object:
            return _orchestrator.execute(
                func, resolve_key(input_data, idempotency_key), input_data, **options
            )

        wrapper.orchestrator = _orchestrator  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
