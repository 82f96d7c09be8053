"""
SCASH chain parameters.

Two parameter sets exist: mainnet (bech32 HRP ``scash``) and the test network,
which runs as a regtest chain and therefore uses the ``bcrt`` HRP. The set is
chosen once from the ``is_testnet`` flag and passed explicitly to everything
that encodes addresses or keys.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class NetworkParams(BaseModel):
    """Immutable chain constants."""

    model_config = ConfigDict(frozen=True)

    name: str
    message_prefix: str
    bech32_hrp: str
    bip32_public: int
    bip32_private: int
    pubkey_hash: int
    script_hash: int
    wif: int
    # Recipient of the platform (app) fee output
    platform_fee_address: str


SCASH_MAINNET = NetworkParams(
    name="mainnet",
    message_prefix="\x18Scash Signed Message:\n",
    bech32_hrp="scash",
    bip32_public=0x0488B21E,
    bip32_private=0x0488ADE4,
    pubkey_hash=0x3C,
    script_hash=0x7D,
    wif=0x80,
    platform_fee_address="scash1qdq0sa4wxav36k7a4gwxq3k6dk0ahpqfsz8xpvg",
)

SCASH_TESTNET = NetworkParams(
    name="testnet",
    message_prefix="\x18Scash Signed Message:\n",
    bech32_hrp="bcrt",
    bip32_public=0x0488B21E,
    bip32_private=0x0488ADE4,
    pubkey_hash=0x3C,
    script_hash=0x7D,
    wif=0x80,
    platform_fee_address="bcrt1q8zlevurcf7ht49v7m83jz9v8uvqyturrg2w96t",
)


def get_network_params(is_testnet: bool) -> NetworkParams:
    """Select the parameter set for the given environment."""
    return SCASH_TESTNET if is_testnet else SCASH_MAINNET
