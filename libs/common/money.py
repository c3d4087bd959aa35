"""Money helpers for the settlement engine.

Storage and API unit: dollars as ``Decimal`` with two places (SGD by default).
Provider unit: cents (int) for Stripe, decimal strings for PayPal / NETS.

Every total is rounded to two places with ROUND_HALF_UP at each summation
step, so a figure re-derived on the server always matches the stored one.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

# ─── constants ───────────────────────────────────────────────────────────────

CENTS_PER_DOLLAR: int = 100
TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, float, str]


# ─── conversion helpers ──────────────────────────────────────────────────────


def to_money(value: MoneyLike) -> Decimal:
    """Coerce to a two-place Decimal. Floats go through ``str`` to avoid binary noise."""
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def to_cents(amount: MoneyLike) -> int:
    """S$21.50 -> 2150."""
    return int(to_money(amount) * CENTS_PER_DOLLAR)


def cents_to_money(cents: int) -> Decimal:
    """2150 -> Decimal('21.50')."""
    return to_money(Decimal(cents) / CENTS_PER_DOLLAR)


def money_str(amount: MoneyLike) -> str:
    """Provider wire format, e.g. ``'21.50'``."""
    return f"{to_money(amount):.2f}"


def has_at_most_two_places(value: Decimal) -> bool:
    return value == value.quantize(TWO_PLACES)


def same_amount(a: MoneyLike, b: MoneyLike) -> bool:
    """Exact equality at two-decimal precision."""
    return to_money(a) == to_money(b)
