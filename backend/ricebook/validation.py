from __future__ import annotations

from typing import Any


# Largest amount accepted for any money or bag field (whole rupees / bags).
# Keeps products like bags * price_per_bag well inside SQLite's INTEGER range.
MAX_AMOUNT = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


def coerce_int(key: str, value: Any) -> int:
    """
    Strictly coerce a client-supplied value to int.

    Accepts ints (not bools) and plain digit strings with optional leading
    minus. Rejects floats, decimals and scientific notation.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def require_int(
    key: str,
    value: Any,
    *,
    minimum: int | None = None,
    maximum: int = MAX_AMOUNT,
) -> int:
    if value is None:
        raise ValidationError(f"{key} is required")
    number = coerce_int(key, value)
    if minimum is not None and number < minimum:
        if minimum == 0:
            raise ValidationError(f"{key} cannot be negative")
        raise ValidationError(f"{key} must be at least {minimum}")
    if number > maximum:
        raise ValidationError(f"{key} exceeds maximum of {maximum}")
    return number


def optional_int(key: str, value: Any, *, default: int = 0, minimum: int | None = None) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    return require_int(key, value, minimum=minimum)


def require_text(key: str, value: Any, *, max_length: int = 255) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{key} is required")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text


def optional_text(key: str, value: Any, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text


def require_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload
