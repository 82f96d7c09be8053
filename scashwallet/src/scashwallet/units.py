"""
Conversions between whole-coin amounts and satoshis.

Whole-coin amounts are always handled as ``Decimal`` so that values such as
0.1 + 0.2 stay exact; satoshi amounts are plain ints.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

SATS_PER_COIN = 100_000_000

_SATS = Decimal(SATS_PER_COIN)
_EIGHT_PLACES = Decimal("0.00000001")


def to_decimal(amount: Decimal | int | float | str) -> Decimal:
    """Coerce an amount to Decimal, going through str for floats."""
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, float):
        return Decimal(repr(amount))
    return Decimal(amount)


def coin_to_sat(amount: Decimal | int | float | str) -> int:
    """Whole coins to satoshis, rounded to the nearest satoshi."""
    return int((to_decimal(amount) * _SATS).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def sat_to_coin(sats: int) -> Decimal:
    """Satoshis to whole coins with 8 decimal places."""
    return (Decimal(sats) / _SATS).quantize(_EIGHT_PLACES)
