"""Currency-aware rounding for prices and totals.

All amounts are ``Decimal``.  Rounding is half-up to the currency's
configured decimals; currencies with a cash rounding step (e.g. CHF at
0.05) round to the nearest step instead.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from modules.core.config import get_shop_settings

Number = Union[Decimal, int, str, float]

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Number | None) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


class Currency:
    """Rounding rules for a single currency code."""

    def __init__(self, code: str | None = None) -> None:
        shop = get_shop_settings()
        self.code = (code or shop.currency).upper()
        conf = shop.currency_settings(self.code)
        self.decimals = conf.decimals
        self.rounding_step = conf.rounding_step
        self._quantum = Decimal(1).scaleb(-self.decimals)

    def round(self, amount: Number) -> Decimal:
        """Round half-up to the currency precision (or rounding step)."""
        value = to_decimal(amount)
        if self.rounding_step > self._quantum:
            steps = (value / self.rounding_step).quantize(Decimal(1), ROUND_HALF_UP)
            return (steps * self.rounding_step).quantize(self._quantum, ROUND_HALF_UP)
        return value.quantize(self._quantum, rounding=ROUND_HALF_UP)

    def __repr__(self) -> str:
        return f"Currency({self.code!r}, decimals={self.decimals})"


def percent_off(amount: Number, pct: Number) -> Decimal:
    """Return *amount* reduced by *pct* percent, never below zero."""
    value = to_decimal(amount) * (HUNDRED - to_decimal(pct)) / HUNDRED
    return max(value, ZERO)
