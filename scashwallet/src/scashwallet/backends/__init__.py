"""
Blockchain backend implementations.

Available backends:
- BitcoinCoreBackend: Node JSON-RPC with endpoint failover (no wallet, uses scantxoutset)
- ExplorerClient: Block explorer address history
"""

from scashwallet.backends.base import BlockchainBackend, TxStatus
from scashwallet.backends.bitcoin_core import BitcoinCoreBackend
from scashwallet.backends.explorer import ExplorerClient

__all__ = [
    "BlockchainBackend",
    "BitcoinCoreBackend",
    "ExplorerClient",
    "TxStatus",
]
