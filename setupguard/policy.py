"""Retry policy configuration."""

import math
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace

from .utils import clamp

# Longer parameter names accepted by configure().
ALIASES = {
    "max_retry_attempts": "max_attempts",
    "base_delay_seconds": "base_delay",
    "max_delay_seconds": "max_delay",
    "jitter_factor": "jitter_fraction",
}


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration.

    Attributes:
        max_attempts: Attempts including the first one
        base_delay: Delay before the first retry (seconds)
        max_delay: Upper bound for the pre-jitter delay (seconds)
        backoff_multiplier: Growth factor per attempt
        jitter_fraction: Spread of the jitter (0.1 means +/-5% around the delay)
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 300.0
    backoff_multiplier: float = 2.0
    jitter_fraction: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay <= 0:
            raise ValueError(f"base_delay must be > 0, got {self.base_delay}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        if self.backoff_multiplier < 1.0:
            raise ValueError(
                f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}"
            )
        if not 0.0 <= self.jitter_fraction <= 1.0:
            raise ValueError(
                f"jitter_fraction must be within [0, 1], got {self.jitter_fraction}"
            )

    @classmethod
    def from_mapping(cls, params: Mapping[str, object]) -> "RetryPolicy":
        """Build a policy from defaults plus (clamped) overrides."""
        return cls().configure(params)

    def configure(self, params: Mapping[str, object]) -> "RetryPolicy":
        """Return a copy with the given fields replaced.

        Each field is clamped to its legal range instead of being
        rejected. Unknown keys, and values that are not finite numbers,
        are ignored.
        """
        known = {f.name for f in fields(self)}
        values: dict[str, float] = {}
        for name, value in params.items():
            name = ALIASES.get(name, name)
            number = _as_number(value)
            if name in known and number is not None:
                values[name] = number

        changes: dict[str, float | int] = {}
        if "max_attempts" in values:
            changes["max_attempts"] = int(clamp(int(values["max_attempts"]), 1))
        if "base_delay" in values:
            changes["base_delay"] = clamp(values["base_delay"], 1.0)
        if "max_delay" in values:
            changes["max_delay"] = clamp(values["max_delay"], 1.0)
        if "backoff_multiplier" in values:
            changes["backoff_multiplier"] = clamp(values["backoff_multiplier"], 1.0)
        if "jitter_fraction" in values:
            changes["jitter_fraction"] = clamp(values["jitter_fraction"], 0.0, 1.0)

        base_delay = changes.get("base_delay", self.base_delay)
        max_delay = changes.get("max_delay", self.max_delay)
        if max_delay < base_delay:
            changes["max_delay"] = base_delay

        return replace(self, **changes)

    def to_dict(self) -> dict[str, float | int]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "backoff_multiplier": self.backoff_multiplier,
            "jitter_fraction": self.jitter_fraction,
        }


def _as_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
