"""Retry orchestrator for idempotent setup operations.

Runs one logical setup operation until it succeeds, fails permanently or
runs out of attempts:

    check idempotency key -> attempt -> (success | conflict recovery | backoff)

A result stored under the idempotency key is returned without running
the operation again, so a retried setup never creates duplicates.
"""

import asyncio
import inspect
import logging
import random
import threading
import time
from collections.abc import Awaitable, Callable, Mapping

from .backoff import next_delay
from .conflict import ConflictResolver, classify
from .exceptions import (
    ResultNotPersistedError,
    RetryCancelledError,
    RetryExhaustedError,
    SerializationError,
    SetupError,
)
from .idempotency import IdempotencyStore
from .policy import RetryPolicy
from .record import IdempotencyRecord, RetryAttemptRecord, RetryContext
from .stores import MemoryStore

Operation = Callable[[object, RetryContext], object]
AsyncOperation = Callable[[object, RetryContext], Awaitable[object] | object]

RECENT_ATTEMPTS = 10


class RetryOrchestrator:
    """Executes setup operations with retries, idempotency and conflict recovery.

    Each instance keeps its own attempt history. Run independent
    workflows on one instance only if a shared history is wanted.

    Args:
        store: Idempotency store (defaults to an in-memory one)
        policy: Retry policy (defaults to RetryPolicy())
        resolver: Conflict resolver; conflicts are not recovered without one
        logger: Logger to use instead of the module logger
        sleep: Blocking wait used between attempts (defaults to time.sleep)
        rng: Random source for jitter
        on_attempt: Called with every RetryAttemptRecord appended

    Example:
        orchestrator = RetryOrchestrator(
            store=IdempotencyStore(RedisStore(redis_client)),
            resolver=ConflictResolver(HttpResourceFetcher(client)),
        )
        result = orchestrator.execute(create_organization, "signup-7f3a", data)
    """

    def __init__(
        self,
        store: IdempotencyStore | None = None,
        policy: RetryPolicy | None = None,
        resolver: ConflictResolver | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], None] | None = None,
        rng: random.Random | None = None,
        on_attempt: Callable[[RetryAttemptRecord], None] | None = None,
    ) -> None:
        self.store = store or IdempotencyStore(MemoryStore())
        self.policy = policy or RetryPolicy()
        self.resolver = resolver
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep or time.sleep
        self._rng = rng or random.Random()
        self._on_attempt = on_attempt
        self._history: list[RetryAttemptRecord] = []

    # ================================================================
    # Configuration and statistics
    # ================================================================

    def configure(self, params: Mapping[str, object] | None = None, **kwargs: object) -> RetryPolicy:
        """Replace the retry policy, clamping each field to its legal range."""
        merged = dict(params or {})
        merged.update(kwargs)
        self.policy = self.policy.configure(merged)
        return self.policy

    @property
    def history(self) -> tuple[RetryAttemptRecord, ...]:
        return tuple(self._history)

    def get_retry_stats(self) -> dict[str, object]:
        total = len(self._history)
        successful = sum(1 for record in self._history if record.success)
        return {
            "total_attempts": total,
            "successful": successful,
            "failed": total - successful,
            "success_rate": (successful / total) * 100 if total else 0.0,
            **self.policy.to_dict(),
            "recent_attempts": [r.to_dict() for r in self._history[-RECENT_ATTEMPTS:]],
        }

    def clear_history(self) -> None:
        self._history.clear()

    def _record(self, record: RetryAttemptRecord) -> None:
        self._history.append(record)
        if self._on_attempt is None:
            return
        try:
            self._on_attempt(record)
        except Exception as e:
            self.logger.error(f"Attempt listener failed: {type(e).__name__}: {e}")

    # ================================================================
    # Execution
    # ================================================================

    def execute(
        self,
        operation: Operation,
        idempotency_key: str,
        input_data: object,
        *,
        from_step: str | None = None,
        cancel: threading.Event | None = None,
        deadline: float | None = None,
    ) -> object:
        """Run a setup operation with retries.

        Args:
            operation: Called as ``operation(input_data, context)``
            idempotency_key: Identifies this logical invocation
            input_data: Passed through to the operation
            from_step: Step the workflow resumes from, passed in the context
            cancel: Set it to abort a backoff wait
            deadline: ``time.monotonic()`` value after which no new attempt starts

        Returns:
            Fresh, cached or conflict-recovered result

        Raises:
            SetupError: Non-recoverable domain failure (first occurrence)
            RetryExhaustedError: Every attempt failed with a recoverable error
            RetryCancelledError: Cancelled or past deadline while waiting
            ResultNotPersistedError: Succeeded, but the result is not JSON-serializable
            Exception: Any unexpected error from the operation, unchanged
        """
        cached = self._check_idempotency(idempotency_key)
        if cached is not None:
            return cached.result

        started_at = time.time()
        max_attempts = self.policy.max_attempts
        last_error: BaseException | None = None

        for attempt in range(1, max_attempts + 1):
            context = RetryContext(idempotency_key, attempt, max_attempts, from_step, started_at)
            self.logger.info(
                f"Attempting setup '{idempotency_key}' ({attempt}/{max_attempts})"
                + (f" from step {from_step}" if from_step else "")
            )
            try:
                result = operation(input_data, context)
            except SetupError as e:
                last_error = e
                outcome = self._handle_failure(e, idempotency_key, attempt, max_attempts)
                if outcome == "resolve" and self.resolver is not None:
                    recovered = self.resolver.resolve(classify(e), _as_mapping(input_data))
                    if recovered is not None:
                        return self._succeed(
                            idempotency_key, attempt, recovered, recovered["recovery_type"]
                        )
                delay = self._delay(e, attempt)
                self._wait(delay, idempotency_key, attempt, e, cancel, deadline)
            except Exception as e:
                self._unexpected(e, idempotency_key, attempt)
                raise
            else:
                return self._succeed(idempotency_key, attempt, result)

        raise RetryExhaustedError(idempotency_key, max_attempts, last_error) from last_error

    async def execute_async(
        self,
        operation: AsyncOperation,
        idempotency_key: str,
        input_data: object,
        *,
        from_step: str | None = None,
        cancel: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> object:
        """Async variant of execute.

        The operation may be a coroutine function or a plain callable.
        Waits are awaited instead of blocking, and store and resolver
        calls run in a worker thread.
        """
        cached = await asyncio.to_thread(self._check_idempotency, idempotency_key)
        if cached is not None:
            return cached.result

        started_at = time.time()
        max_attempts = self.policy.max_attempts
        last_error: BaseException | None = None

        for attempt in range(1, max_attempts + 1):
            context = RetryContext(idempotency_key, attempt, max_attempts, from_step, started_at)
            self.logger.info(
                f"Attempting setup '{idempotency_key}' ({attempt}/{max_attempts})"
                + (f" from step {from_step}" if from_step else "")
            )
            try:
                result = operation(input_data, context)
                if inspect.isawaitable(result):
                    result = await result
            except SetupError as e:
                last_error = e
                outcome = self._handle_failure(e, idempotency_key, attempt, max_attempts)
                if outcome == "resolve" and self.resolver is not None:
                    recovered = await asyncio.to_thread(
                        self.resolver.resolve, classify(e), _as_mapping(input_data)
                    )
                    if recovered is not None:
                        return await asyncio.to_thread(
                            self._succeed,
                            idempotency_key,
                            attempt,
                            recovered,
                            recovered["recovery_type"],
                        )
                delay = self._delay(e, attempt)
                await self._wait_async(delay, idempotency_key, attempt, e, cancel, deadline)
            except Exception as e:
                self._unexpected(e, idempotency_key, attempt)
                raise
            else:
                return await asyncio.to_thread(self._succeed, idempotency_key, attempt, result)

        raise RetryExhaustedError(idempotency_key, max_attempts, last_error) from last_error

    # ================================================================
    # Steps shared by execute and execute_async
    # ================================================================

    def _check_idempotency(self, key: str) -> IdempotencyRecord | None:
        record = self.store.lookup(key)
        if record is not None:
            self.logger.info(f"Found existing successful operation for '{key}'")
        return record

    def _succeed(
        self,
        key: str,
        attempt: int,
        result: object,
        recovery_type: str | None = None,
    ) -> object:
        try:
            stored = self.store.save(key, result, recovery_type=recovery_type)
        except SerializationError as e:
            self._record(
                RetryAttemptRecord(
                    idempotency_key=key,
                    attempt=attempt,
                    success=True,
                    error=str(e),
                    error_type=type(e).__name__,
                    recovery_type=recovery_type,
                )
            )
            self.logger.error(
                f"Setup '{key}' succeeded on attempt {attempt} but its result "
                f"could not be stored: {e.reason}"
            )
            raise ResultNotPersistedError(key, attempt, result, e.reason) from e

        self._record(
            RetryAttemptRecord(
                idempotency_key=key,
                attempt=attempt,
                success=True,
                recovery_type=recovery_type,
            )
        )
        if recovery_type:
            self.logger.info(f"Setup '{key}' recovered ({recovery_type}) on attempt {attempt}")
        else:
            self.logger.info(f"Setup '{key}' completed successfully on attempt {attempt}")
        return stored.result

    def _handle_failure(self, error: SetupError, key: str, attempt: int, max_attempts: int) -> str:
        """Record a domain failure and decide what happens next.

        Returns "resolve" when the conflict is worth handing to the
        resolver, "retry" otherwise. Raises when the loop must stop.
        """
        self._record(RetryAttemptRecord.failed(key, attempt, error))

        if not error.recoverable:
            self.logger.error(
                f"Setup '{key}' failed permanently on attempt {attempt}: {error} "
                f"(step {error.setup_step}, not recoverable)"
            )
            raise error

        if attempt >= max_attempts:
            self.logger.error(f"Setup '{key}' failed after {attempt} attempts: {error}")
            raise RetryExhaustedError(key, attempt, error) from error

        if classify(error).can_auto_resolve:
            return "resolve"
        return "retry"

    def _unexpected(self, error: Exception, key: str, attempt: int) -> None:
        self._record(RetryAttemptRecord.failed(key, attempt, error))
        self.logger.error(
            f"Unexpected error during setup '{key}' on attempt {attempt}: "
            f"{type(error).__name__}: {error}"
        )

    def _delay(self, error: SetupError, attempt: int) -> float:
        delay = next_delay(attempt, self.policy, error.retry_delay, self._rng)
        self.logger.warning(
            f"{type(error).__name__}: {error}. "
            f"Attempt {attempt}/{self.policy.max_attempts}. Retrying in {delay:.2f}s..."
        )
        return delay

    def _wait(
        self,
        delay: float,
        key: str,
        attempt: int,
        error: SetupError,
        cancel: threading.Event | None,
        deadline: float | None,
    ) -> None:
        wait_for, expires = _bounded(delay, deadline)
        if cancel is not None:
            cancelled = cancel.wait(wait_for)
        else:
            self._sleep(wait_for)
            cancelled = False
        if cancelled or expires:
            self._cancelled(key, attempt, error)

    async def _wait_async(
        self,
        delay: float,
        key: str,
        attempt: int,
        error: SetupError,
        cancel: asyncio.Event | None,
        deadline: float | None,
    ) -> None:
        wait_for, expires = _bounded(delay, deadline)
        cancelled = False
        if cancel is not None:
            try:
                await asyncio.wait_for(cancel.wait(), timeout=wait_for)
                cancelled = True
            except asyncio.TimeoutError:
                pass
        else:
            await asyncio.sleep(wait_for)
        if cancelled or expires:
            self._cancelled(key, attempt, error)

    def _cancelled(self, key: str, attempt: int, error: SetupError) -> None:
        self.logger.warning(f"Setup '{key}' cancelled after {attempt} attempts")
        raise RetryCancelledError(key, attempt, error) from error


def _bounded(delay: float, deadline: float | None) -> tuple[float, bool]:
    """Cut a wait short at the deadline; True means the deadline is hit."""
    if deadline is None:
        return delay, False
    remaining = deadline - time.monotonic()
    if remaining <= delay:
        return max(0.0, remaining), True
    return delay, False


def _as_mapping(input_data: object) -> Mapping[str, object]:
    if isinstance(input_data, Mapping):
        return input_data
    return {"input": input_data}
