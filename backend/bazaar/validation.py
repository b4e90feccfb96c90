from __future__ import annotations

from typing import Any

from .errors import ValidationError
from .money import MAX_AMOUNT_FILS

# Largest quantity one request may move; keeps stock arithmetic well inside
# the 32-bit Integer column.
MAX_QUANTITY = 1_000_000
MAX_STOCK = 2_147_483_647


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion for request payloads.

    Accepts real ints and plain-digit strings. Rejects bools (an int subclass),
    floats, decimals and scientific notation, so "1e3" or 2.5 never sneak in
    as a quantity or an amount.
    """
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={"field": field})

    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)",
                details={"field": field},
            )
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", details={"field": field})
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", details={"field": field})
    else:
        raise ValidationError(f"{field} must be an integer", details={"field": field})

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={"field": field, "minimum": minimum})
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", details={"field": field, "maximum": maximum})
    return result


def coerce_amount_fils(value: Any, field: str) -> int:
    return coerce_int(value, field, minimum=0, maximum=MAX_AMOUNT_FILS)


def coerce_quantity(value: Any, field: str, *, allow_negative: bool = False) -> int:
    minimum = -MAX_QUANTITY if allow_negative else 1
    return coerce_int(value, field, minimum=minimum, maximum=MAX_QUANTITY)
