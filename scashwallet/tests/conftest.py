"""
Test configuration for scashwallet tests.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

import pytest

from scashwallet.network import SCASH_MAINNET, SCASH_TESTNET, NetworkParams
from scashwallet.wallet.address import hash160
from scashwallet.wallet.bip32 import HDKey
from scashwallet.wallet.models import Unspent
from scashwallet.wallet.vault import derive


@pytest.fixture
def sample_mnemonic() -> str:
    """Test mnemonic (not for production use!)."""
    return (
        "abandon abandon abandon abandon abandon abandon "
        "abandon abandon abandon abandon abandon about"
    )


@pytest.fixture
def mainnet() -> NetworkParams:
    return SCASH_MAINNET


@pytest.fixture
def testnet() -> NetworkParams:
    return SCASH_TESTNET


@pytest.fixture
def signing_key(sample_mnemonic: str, mainnet: NetworkParams) -> HDKey:
    return derive(sample_mnemonic, mainnet)


@pytest.fixture
def own_address(signing_key: HDKey, mainnet: NetworkParams) -> str:
    return signing_key.get_address(mainnet)


@pytest.fixture
def make_utxo(signing_key: HDKey) -> Callable[..., Unspent]:
    """Factory for UTXOs locked to the sample key."""
    script = (b"\x00\x14" + hash160(signing_key.public_key_bytes())).hex()

    def _make(amount: str, index: int = 0, **kwargs) -> Unspent:
        return Unspent(
            txid=f"{index:02x}" * 32,
            vout=kwargs.pop("vout", 0),
            amount=Decimal(amount),
            scriptpubkey=kwargs.pop("scriptpubkey", script),
            height=kwargs.pop("height", 100),
            confirmations=kwargs.pop("confirmations", 6),
            **kwargs,
        )

    return _make
