# frota/money.py
"""Integer-cent helpers: every aggregate is summed in cents and only turned
back into a two-place Decimal at the edge."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
COMMISSION_RATE = Decimal("0.10")


def to_cents(value: Optional[Number]) -> int:
    if value is None:
        return 0
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def quantize(value: Number) -> Decimal:
    return from_cents(to_cents(value))


def commission_for(freight: Optional[Number]) -> Decimal:
    """Driver commission: 10% of the freight, rounded half-up to the cent."""
    if freight is None:
        return from_cents(0)
    return (Decimal(str(freight)) * COMMISSION_RATE).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(part_cents: int, whole_cents: int) -> Decimal:
    if whole_cents == 0:
        return Decimal("0.0")
    return (Decimal(part_cents) * 100 / Decimal(whole_cents)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
