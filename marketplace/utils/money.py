# marketplace/utils/money.py
"""
Currency rounding helpers.

Every derived amount in checkout pricing goes through ``round_currency`` so
that the same inputs always round the same way.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
# One minor unit (kobo, cent)
DEFAULT_QUANTUM = Decimal("1")


def to_decimal(value: Optional[Number]) -> Decimal:
    """Convert DB/JSON numbers to Decimal without float artefacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_currency(value: Number, quantum: Decimal = DEFAULT_QUANTUM) -> Decimal:
    """Round half-up to the currency quantum (1 for minor units, 0.01 for major)."""
    return to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def sum_currency(values: Iterable[Number], quantum: Decimal = DEFAULT_QUANTUM) -> Decimal:
    return round_currency(sum((to_decimal(v) for v in values), ZERO), quantum)


def to_minor_units(amount: Number, quantum: Decimal = DEFAULT_QUANTUM) -> int:
    """
    Gateway amount (kobo) for an engine amount.

    With quantum 1 amounts are already minor units; with 0.01 they are
    major units and get scaled by 100.
    """
    amount = to_decimal(amount)
    if quantum < Decimal("1"):
        amount = amount * 100
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
