def ensure_float(value: object, default: float = 0.0) -> float:
    """Convert a value to float, with a default fallback."""
    try:
        return float(value) if isinstance(value, (int, float, str)) else default
    except (TypeError, ValueError):
        return default


def clamp(value: float, low: float, high: float | None = None) -> float:
    """Clamp a value to [low, high]; high is optional."""
    value = max(low, value)
    if high is not None:
        value = min(high, value)
    return value
