"""
Base blockchain backend interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal

from scashwallet.wallet.models import Unspent


@dataclass
class TxStatus:
    txid: str
    confirmations: int
    blockhash: str | None = None
    block_height: int | None = None

    @property
    def is_confirmed(self) -> bool:
        return self.blockhash is not None


class BlockchainBackend(ABC):
    """
    Chain access needed by the wallet: fee quotes, the address UTXO snapshot,
    broadcast and confirmation lookups.
    """

    @abstractmethod
    async def get_utxos(self, address: str) -> list[Unspent]:
        """Current unspent outputs of ``address``"""

    @abstractmethod
    async def estimate_fee(self, conf_target: int) -> Decimal:
        """Fee rate in coin/kB for confirmation within ``conf_target`` blocks"""

    @abstractmethod
    async def broadcast_transaction(self, tx_hex: str) -> str:
        """Broadcast transaction, returns txid"""

    @abstractmethod
    async def get_transaction(self, txid: str) -> TxStatus | None:
        """Confirmation status of ``txid``, None if the node does not know it"""

    @abstractmethod
    async def get_block_height(self) -> int:
        """Get current blockchain height"""

    async def close(self) -> None:
        """Close backend connection"""
        pass
