"""
Wallet error taxonomy.

Everything a caller is expected to recover from (wrong password, missing funds,
a rejected broadcast) derives from WalletError. Programming errors such as a
negative change amount are plain ValueErrors.
"""

from __future__ import annotations

from decimal import Decimal


class WalletError(Exception):
    """Base class for wallet errors."""


class InvalidMnemonic(WalletError):
    """Mnemonic has the wrong word count or fails BIP-39 validation."""


class WrongPassword(WalletError):
    """Wallet blob could not be decrypted into a valid record.

    Raised for a wrong password and for a corrupt blob alike.
    """

    def __init__(self, message: str = "Wrong password or corrupt wallet data"):
        super().__init__(message)


class InvalidWalletFile(WalletError):
    """Wallet backup file is not in the expected format."""


class InvalidFeeRate(WalletError):
    """Fee rate is missing, zero or negative."""


class InsufficientFunds(WalletError):
    """Usable UTXOs do not cover the required amount."""

    def __init__(self, required: Decimal, available: Decimal):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient funds: need {required}, have {available}")


class SigningFailure(WalletError):
    """Transaction could not be signed. The attempt must not be retried as-is."""


class RpcError(WalletError, ValueError):
    """JSON-RPC method error returned by the node."""

    def __init__(self, code: int | str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC error {code}: {message}")


class BroadcastRejected(WalletError):
    """Node refused the transaction. Code and message are passed through verbatim."""

    def __init__(self, code: int | str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"Broadcast rejected ({code}): {message}")


class RpcUnavailable(WalletError, ConnectionError):
    """No configured RPC endpoint answered."""
