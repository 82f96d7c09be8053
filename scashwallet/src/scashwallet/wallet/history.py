"""
Transaction history: classification of explorer records relative to the
wallet address, and the local ledger of broadcast-but-unconfirmed
transactions.
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterable
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from scashwallet.units import sat_to_coin
from scashwallet.wallet.models import (
    ClassifiedTransaction,
    PayloadOutput,
    PendingStatus,
    PendingTransaction,
    SpendOutput,
    TransactionType,
    Unspent,
)


class TxParty(BaseModel):
    """Address/amount pair of an explorer record (amount in satoshis)."""

    address: str = ""
    amount: int = 0


class HistoryRecord(BaseModel):
    """Transaction as served by the block explorer's address endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    txid: str
    block_height: int | None = Field(default=None, alias="blockHeight")
    senders: list[TxParty] = Field(default_factory=list)
    receivers: list[TxParty] = Field(default_factory=list)
    change_outputs: list[TxParty] = Field(default_factory=list, alias="changeOutputs")
    fee: int = 0
    timestamp: str = ""
    confirmations: int = 0
    raw_transaction: dict[str, Any] | None = Field(default=None, alias="rawTransaction")


def _sum_for(parties: Iterable[TxParty], address: str) -> int:
    return sum(p.amount for p in parties if p.address == address)


def classify(tx: HistoryRecord, own_address: str) -> ClassifiedTransaction:
    """
    Classify ``tx`` from the point of view of ``own_address``.

    Rules, first match wins:
        no senders, received > 0    -> mining, net = received
        sent > 0 and received > 0   -> self,   net = received - sent
        sent > 0                    -> expense, net = -(sent - change)
        received > 0                -> income, net = received

    ``received`` only counts the receivers list; change is tracked separately.
    """
    sent = _sum_for(tx.senders, own_address)
    received = _sum_for(tx.receivers, own_address)
    change = _sum_for(tx.change_outputs, own_address)

    if not tx.senders and received > 0:
        tx_type = TransactionType.MINING
        net = received
    elif sent > 0 and received > 0:
        tx_type = TransactionType.SELF
        net = received - sent
    elif sent > 0:
        tx_type = TransactionType.EXPENSE
        net = -(sent - change)
    elif received > 0:
        tx_type = TransactionType.INCOME
        net = received
    else:
        logger.warning(f"Transaction {tx.txid} does not involve {own_address} in any amount")
        tx_type = TransactionType.SELF
        net = 0

    return ClassifiedTransaction(
        type=tx_type,
        amount=sat_to_coin(abs(net)),
        net_amount=sat_to_coin(net),
        txid=tx.txid,
        timestamp=tx.timestamp,
        confirmations=tx.confirmations,
    )


def mark_consumed(utxos: Iterable[Unspent], outpoints: set[str]) -> list[Unspent]:
    """Copy of ``utxos`` with the given outpoints flagged unusable."""
    return [replace(u, is_usable=False) if u.outpoint in outpoints else replace(u) for u in utxos]


def _unspent_to_dict(utxo: Unspent) -> dict[str, Any]:
    return {
        "txid": utxo.txid,
        "vout": utxo.vout,
        "amount": str(utxo.amount),
        "scriptpubkey": utxo.scriptpubkey,
        "height": utxo.height,
        "confirmations": utxo.confirmations,
        "is_usable": utxo.is_usable,
        "in_mempool": utxo.in_mempool,
    }


def _unspent_from_dict(data: dict[str, Any]) -> Unspent:
    return Unspent(**{**data, "amount": Decimal(data["amount"])})


def pending_to_dict(entry: PendingTransaction) -> dict[str, Any]:
    return {
        "id": entry.id,
        "rawtx": entry.rawtx,
        "total_input": str(entry.total_input),
        "total_output": str(entry.total_output),
        "change": str(entry.change),
        "fee_rate": str(entry.fee_rate),
        "platform_fee": str(entry.platform_fee),
        "consumed": [_unspent_to_dict(u) for u in entry.consumed],
        "outputs": [
            {
                "kind": "payload" if isinstance(o, PayloadOutput) else "spend",
                "address": o.address,
                "amount": str(o.amount),
            }
            for o in entry.outputs
        ],
        "timestamp": entry.timestamp,
        "status": entry.status.value,
    }


def pending_from_dict(data: dict[str, Any]) -> PendingTransaction:
    outputs: list[SpendOutput | PayloadOutput] = []
    for o in data.get("outputs", []):
        if o.get("kind") == "payload":
            outputs.append(PayloadOutput(address=o["address"], value=Decimal(o["amount"])))
        else:
            outputs.append(SpendOutput(address=o["address"], amount=Decimal(o["amount"])))

    return PendingTransaction(
        id=data["id"],
        rawtx=data["rawtx"],
        total_input=Decimal(data["total_input"]),
        total_output=Decimal(data["total_output"]),
        change=Decimal(data["change"]),
        fee_rate=Decimal(data["fee_rate"]),
        platform_fee=Decimal(data.get("platform_fee", "0")),
        consumed=[_unspent_from_dict(u) for u in data.get("consumed", [])],
        outputs=outputs,
        timestamp=int(data["timestamp"]),
        status=PendingStatus(data.get("status", PendingStatus.PENDING.value)),
    )


class PendingLedger:
    """
    Broadcast transactions, newest last.

    Entries are never removed, only flipped to confirmed. When ``path`` is
    given the ledger is loaded from and saved to that JSON file.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._entries: dict[str, PendingTransaction] = {}
        if path is not None and path.exists():
            self._load()

    def _load(self) -> None:
        assert self.path is not None
        try:
            raw = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read pending ledger {self.path}: {e}")
            raise
        for item in raw:
            entry = pending_from_dict(item)
            self._entries[entry.id] = entry
        logger.debug(f"Loaded {len(self._entries)} pending ledger entries from {self.path}")

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps([pending_to_dict(e) for e in self._entries.values()], indent=2))
        os.replace(tmp, self.path)

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, entry: PendingTransaction) -> None:
        if entry.id in self._entries:
            logger.warning(f"Pending transaction {entry.id} already recorded, replacing")
        self._entries[entry.id] = entry
        self._save()

    def get(self, txid: str) -> PendingTransaction | None:
        return self._entries.get(txid)

    def all(self) -> list[PendingTransaction]:
        return list(self._entries.values())

    def pending(self) -> list[PendingTransaction]:
        return [e for e in self._entries.values() if e.status == PendingStatus.PENDING]

    def mark_confirmed(self, txid: str) -> bool:
        """Flip ``txid`` to confirmed. Returns False if unknown or already confirmed."""
        entry = self._entries.get(txid)
        if entry is None or entry.status == PendingStatus.CONFIRMED:
            return False
        entry.status = PendingStatus.CONFIRMED
        self._save()
        logger.info(f"Transaction {txid} confirmed")
        return True

    def consumed_outpoints(self) -> set[str]:
        """Outpoints spent by transactions that are still pending."""
        return {u.outpoint for e in self.pending() for u in e.consumed}
