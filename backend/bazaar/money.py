"""
Money helpers.

All amounts are stored as integer fils (1/1000 of the currency unit) so
arithmetic stays exact and the database never sees a float.
Display strings always carry three decimals ("10.000").
"""

from __future__ import annotations

FILS_PER_UNIT = 1000

# Maximum price: 9,999,999.999 (9,999,999,999 fils)
MAX_AMOUNT_FILS = 9_999_999_999


def format_fils(amount_fils: int | None) -> str | None:
    if amount_fils is None:
        return None
    sign = "-" if amount_fils < 0 else ""
    units, fils = divmod(abs(int(amount_fils)), FILS_PER_UNIT)
    return f"{sign}{units}.{fils:03d}"


def cash_change_fils(total_fils: int, tendered_fils: int) -> int:
    """Change owed on a cash tender, never negative."""
    return max(tendered_fils - total_fils, 0)
