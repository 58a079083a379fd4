"""Exponential backoff with jitter."""

import random

from .policy import RetryPolicy

MIN_DELAY = 1.0


def base_delay_for(
    attempt: int,
    policy: RetryPolicy,
    suggested_delay: float | None = None,
) -> float:
    """Pre-jitter delay after the given (1-based) failed attempt.

    Args:
        attempt: Number of the attempt that just failed
        policy: Retry policy to apply
        suggested_delay: Base delay proposed by the failing error

    Returns:
        Delay in seconds, within [MIN_DELAY, policy.max_delay]
    """
    base = suggested_delay or policy.base_delay
    delay = base * policy.backoff_multiplier ** (attempt - 1)
    return max(MIN_DELAY, min(policy.max_delay, delay))


def next_delay(
    attempt: int,
    policy: RetryPolicy,
    suggested_delay: float | None = None,
    rng: random.Random | None = None,
) -> float:
    """Delay to wait before the next attempt, jitter included.

    The jitter is centred on zero so the expected delay stays the same.
    """
    delay = base_delay_for(attempt, policy, suggested_delay)
    draw = (rng or random).random()
    delay += delay * policy.jitter_fraction * (draw - 0.5)
    return max(MIN_DELAY, delay)
