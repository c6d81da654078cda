from __future__ import annotations

from typing import Any

from .errors import ValidationError


# Maximum money amount: $9,999,999.99 (999,999,999 cents)
# Keeps totals well inside a 32-bit integer column after summing a few lines
MAX_AMOUNT_CENTS = 999_999_999

_MISSING = object()


def require_payload(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def coerce_int(field: str, value: Any) -> int:
    """
    Strict integer coercion.

    Accepts ints and plain digit strings. Rejects bools, floats, decimals in
    strings and scientific notation so "12.5" or 1e3 never become a quantity.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def get_int(
    payload: dict,
    field: str,
    *,
    required: bool = False,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    raw = payload.get(field, _MISSING)
    if raw is _MISSING or raw is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None

    value = coerce_int(field, raw)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return value


def get_amount_cents(payload: dict, field: str, *, required: bool = False) -> int | None:
    return get_int(payload, field, required=required, minimum=0, maximum=MAX_AMOUNT_CENTS)


def get_str(
    payload: dict,
    field: str,
    *,
    required: bool = False,
    max_length: int | None = None,
) -> str | None:
    raw = payload.get(field)
    if raw is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(raw, str):
        raise ValidationError(f"{field} must be a string")

    value = raw.strip()
    if not value:
        if required:
            raise ValidationError(f"{field} cannot be blank")
        return None
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return value
