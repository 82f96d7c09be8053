"""
Greedy coin selection.

UTXOs are taken in the order the caller supplies them until the running total
covers the target. This is not a minimal-waste selector: for a fixed ordering
the result is always the same prefix of usable outputs.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from loguru import logger

from scashwallet.errors import InsufficientFunds
from scashwallet.units import to_decimal
from scashwallet.wallet.models import Unspent


def is_spendable(utxo: Unspent) -> bool:
    return utxo.is_usable and not utxo.in_mempool


def spendable_balance(utxos: Iterable[Unspent]) -> Decimal:
    return sum((u.amount for u in utxos if is_spendable(u)), Decimal(0))


def select_utxos(utxos: Iterable[Unspent], required_amount: Decimal | str | int) -> list[Unspent]:
    """
    Select UTXOs covering ``required_amount`` whole coins.

    Args:
        utxos: UTXO snapshot in preferred spending order (not modified)
        required_amount: Payment + network fee + platform fee

    Returns:
        The selected UTXOs, in the order they were given

    Raises:
        InsufficientFunds: If all spendable UTXOs together fall short
    """
    required = to_decimal(required_amount)

    selected: list[Unspent] = []
    total = Decimal(0)

    for utxo in utxos:
        if not is_spendable(utxo):
            continue
        selected.append(utxo)
        total += utxo.amount
        if total >= required:
            break

    if total < required:
        raise InsufficientFunds(required=required, available=total)

    logger.debug(f"Selected {len(selected)} UTXO(s) totalling {total} for {required}")
    return selected
