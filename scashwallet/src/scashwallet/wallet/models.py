"""
Wallet data models.

Amounts are whole coins as Decimal unless the field name says otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


@dataclass
class Unspent:
    """A spendable output of the wallet address"""

    txid: str
    vout: int
    amount: Decimal
    scriptpubkey: str
    height: int | None = None
    confirmations: int = 0
    # Confirmed and not consumed by one of our pending transactions
    is_usable: bool = True
    # Already spent by an unconfirmed transaction in the node's mempool
    in_mempool: bool = False

    @property
    def outpoint(self) -> str:
        return f"{self.txid}:{self.vout}"


@dataclass(frozen=True)
class FeeResult:
    """Estimated network fee for a transaction shape"""

    size: int
    fee_sat: int
    fee_coin: Decimal


@dataclass(frozen=True)
class SpendOutput:
    """Ordinary payment destination"""

    address: str
    amount: Decimal


@dataclass(frozen=True)
class PayloadOutput:
    """Data-carrying output produced by the payload codec"""

    address: str
    value: Decimal

    @property
    def amount(self) -> Decimal:
        return self.value


@dataclass
class SignedTransactionResult:
    """
    Outcome of sign_transaction.

    total_output covers every output except change, platform fee included,
    so that total_input == total_output + change + fee.
    """

    success: bool
    rawtx: str
    txid: str
    total_input: Decimal
    total_output: Decimal
    change: Decimal
    fee: Decimal
    fee_rate: Decimal
    platform_fee: Decimal
    error: str | None = None


class PendingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"


@dataclass
class PendingTransaction:
    """A broadcast transaction awaiting confirmation"""

    id: str
    rawtx: str
    total_input: Decimal
    total_output: Decimal
    change: Decimal
    fee_rate: Decimal
    platform_fee: Decimal
    consumed: list[Unspent]
    outputs: list[SpendOutput | PayloadOutput]
    timestamp: int
    status: PendingStatus = PendingStatus.PENDING


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    SELF = "self"
    MINING = "mining"


@dataclass(frozen=True)
class ClassifiedTransaction:
    """A history entry as seen from the wallet address"""

    type: TransactionType
    amount: Decimal
    net_amount: Decimal
    txid: str
    timestamp: str
    confirmations: int

    @property
    def is_positive(self) -> bool:
        return self.net_amount >= 0


@dataclass
class CoinSelection:
    """Inputs and fee figures chosen for a spend"""

    utxos: list[Unspent]
    total_value: Decimal
    fee: FeeResult
    platform_fee: Decimal
    required: Decimal
    outputs: list[SpendOutput | PayloadOutput] = field(default_factory=list)
