"""
Network fee estimation and the platform fee schedule.
"""

from __future__ import annotations

from decimal import ROUND_CEILING, Decimal

from scashwallet.errors import InvalidFeeRate
from scashwallet.units import SATS_PER_COIN, sat_to_coin, to_decimal
from scashwallet.wallet.models import FeeResult

# P2WPKH size constants in vbytes
TX_OVERHEAD_VSIZE = 10
P2WPKH_INPUT_VSIZE = 68
P2WPKH_OUTPUT_VSIZE = 31

# (lower bound inclusive, upper bound exclusive, flat fee), by whole-coin amount
PLATFORM_FEE_SCHEDULE: list[tuple[Decimal, Decimal | None, Decimal]] = [
    (Decimal("0"), Decimal("1"), Decimal("0.0001")),
    (Decimal("1"), Decimal("10"), Decimal("0.01")),
    (Decimal("10"), Decimal("50"), Decimal("0.05")),
    (Decimal("50"), Decimal("100"), Decimal("0.1")),
    (Decimal("100"), Decimal("500"), Decimal("0.2")),
    (Decimal("500"), Decimal("1000"), Decimal("0.4")),
    (Decimal("1000"), Decimal("5000"), Decimal("0.8")),
    (Decimal("5000"), Decimal("10000"), Decimal("1")),
    (Decimal("10000"), None, Decimal("1.3")),
]


def estimate_vsize(input_count: int, output_count: int) -> int:
    if input_count < 0 or output_count < 0:
        raise ValueError("Input and output counts must be non-negative")
    return (
        TX_OVERHEAD_VSIZE + input_count * P2WPKH_INPUT_VSIZE + output_count * P2WPKH_OUTPUT_VSIZE
    )


def estimate_fee(
    input_count: int, output_count: int, fee_rate_per_kb: Decimal | float | str
) -> FeeResult:
    """
    Estimate the fee of a P2WPKH transaction.

    Args:
        input_count: Number of inputs
        output_count: Number of outputs, change and platform fee included
        fee_rate_per_kb: Fee rate in coin/kB as returned by estimatesmartfee

    Returns:
        FeeResult with the fee rounded up to a whole satoshi

    Raises:
        InvalidFeeRate: If the rate is zero or negative
    """
    rate = to_decimal(fee_rate_per_kb)
    if not rate.is_finite() or rate <= 0:
        raise InvalidFeeRate(f"Fee rate must be positive, got {fee_rate_per_kb}")

    sat_per_byte = rate * SATS_PER_COIN / 1000
    size = estimate_vsize(input_count, output_count)
    fee_sat = int((size * sat_per_byte).to_integral_value(rounding=ROUND_CEILING))

    return FeeResult(size=size, fee_sat=fee_sat, fee_coin=sat_to_coin(fee_sat))


def platform_fee(amount: Decimal | float | str) -> Decimal:
    """Flat platform fee for a spend of ``amount`` whole coins."""
    value = to_decimal(amount)
    if value < 0:
        raise ValueError(f"Amount must not be negative, got {amount}")

    for lower, upper, fee in PLATFORM_FEE_SCHEDULE:
        if value >= lower and (upper is None or value < upper):
            return fee

    raise ValueError(f"Amount outside fee schedule: {amount}")
