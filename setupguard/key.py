"""Idempotency key derivation for setup operations."""

import hashlib
import json
from collections.abc import Callable


def generate_key(
    func: Callable,
    input_data: object,
    custom_key_func: Callable[[object], str] | None = None,
    name: str | None = None,
) -> str:
    """Derive a stable idempotency key from a setup function and its input.

    Args:
        func: The setup operation
        input_data: Data the operation is called with
        custom_key_func: Optional function computing the key from input_data
        name: Namespace for the key (defaults to the function's qualified name)

    Returns:
        A key of the form ``name:digest``

    The input is hashed rather than embedded, so emails and other
    personal data never end up in cache key names.
    """
    if custom_key_func:
        return custom_key_func(input_data)

    namespace = name or f"{func.__module__}.{func.__qualname__}"
    canonical = json.dumps(_canonical(input_data), sort_keys=True, separators=(",", ":"))
    digest = hashlib.sha256(canonical.encode()).hexdigest()[:32]
    return f"{namespace}:{digest}"


def _canonical(value: object) -> object:
    """Reduce a value to a JSON structure independent of ordering.

    Args:
        value: Value to normalize

    Returns:
        JSON-compatible value
    """
    if isinstance(value, (str, int, float, bool, type(None))):
        return value

    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]

    # Sets have no order; sort their serialized members
    if isinstance(value, (set, frozenset)):
        return sorted(json.dumps(_canonical(v), sort_keys=True) for v in value)

    # Fallback: use repr (not ideal but better than failing)
    return repr(value)
