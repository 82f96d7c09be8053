"""
scashwallet - Single-address HD wallet engine for the SCASH chain

Provides key custody, fee and coin selection, segwit transaction signing and
history classification.
"""

__version__ = "0.1.0"

from scashwallet.errors import (
    BroadcastRejected,
    InsufficientFunds,
    InvalidFeeRate,
    InvalidMnemonic,
    InvalidWalletFile,
    RpcError,
    RpcUnavailable,
    SigningFailure,
    WalletError,
    WrongPassword,
)
from scashwallet.network import SCASH_MAINNET, SCASH_TESTNET, NetworkParams, get_network_params

__all__ = [
    "BroadcastRejected",
    "InsufficientFunds",
    "InvalidFeeRate",
    "InvalidMnemonic",
    "InvalidWalletFile",
    "NetworkParams",
    "RpcError",
    "RpcUnavailable",
    "SCASH_MAINNET",
    "SCASH_TESTNET",
    "SigningFailure",
    "WalletError",
    "WrongPassword",
    "get_network_params",
]
