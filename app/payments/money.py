"""
Conversion between decimal currency amounts and integer minor units.

Money is held as integer minor units (pence) everywhere inside the
service. Decimal amounts exist only at the API boundary.

Usage:
    from payments.money import from_minor_units, to_minor_units

    to_minor_units(Decimal("49.99"))   # 4999
    from_minor_units(4999)             # Decimal("49.99")
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MINOR_UNITS_PER_MAJOR = 100
_CENT = Decimal("0.01")


def to_minor_units(amount: Decimal | str | int) -> int:
    """
    Convert a decimal amount to minor units, rounding half up to the penny.

    Floats are rejected: the caller must parse JSON numbers as Decimal.

    Raises:
        ValueError: amount is a float or not a finite number
    """
    if isinstance(amount, float):
        raise ValueError("Monetary amounts must not be floats")
    try:
        value = Decimal(amount)
    except InvalidOperation as e:
        raise ValueError(f"Invalid monetary amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid monetary amount: {amount!r}")

    return int(value.quantize(_CENT, rounding=ROUND_HALF_UP) * MINOR_UNITS_PER_MAJOR)


def from_minor_units(minor_units: int) -> Decimal:
    """Convert minor units to a Decimal with two decimal places."""
    return (Decimal(minor_units) / MINOR_UNITS_PER_MAJOR).quantize(_CENT)


def order_total(lines) -> int:
    """
    Sum price x quantity over (price_minor_units, quantity) pairs.
    """
    return sum(price * quantity for price, quantity in lines)
