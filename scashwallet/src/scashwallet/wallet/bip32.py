"""
BIP32 HD key derivation for the SCASH wallet.
The wallet uses a single BIP84 (native segwit) key at m/84'/0'/0'/0/0.
"""

from __future__ import annotations

import hashlib
import hmac

from coincurve import PrivateKey, PublicKey
from mnemonic import Mnemonic

from scashwallet.errors import InvalidMnemonic
from scashwallet.network import NetworkParams
from scashwallet.wallet.address import private_key_to_wif, pubkey_to_p2wpkh_address

# secp256k1 curve order
SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)

HARDENED_OFFSET = 0x80000000

MNEMONIC_WORD_COUNT = 12

_mnemo = Mnemonic("english")


class HDKey:
    """
    Hierarchical Deterministic key.

    Only the private derivation path is needed: the wallet always holds the
    mnemonic, never an extended public key.
    """

    def __init__(self, private_key: PrivateKey, chain_code: bytes, depth: int = 0):
        self._private_key = private_key
        self._public_key = private_key.public_key
        self.chain_code = chain_code
        self.depth = depth

    @property
    def private_key(self) -> PrivateKey:
        return self._private_key

    @property
    def public_key(self) -> PublicKey:
        return self._public_key

    @classmethod
    def from_seed(cls, seed: bytes) -> HDKey:
        """Create master HD key from a BIP39 seed"""
        digest = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
        return cls(PrivateKey(digest[:32]), digest[32:], depth=0)

    def derive(self, path: str) -> HDKey:
        """
        Derive child key from path notation (e.g., "m/84'/0'/0'/0/0").
        ' or h marks hardened derivation.
        """
        if not path.startswith("m"):
            raise ValueError("Path must start with 'm'")

        key = self
        for part in path.split("/")[1:]:
            if not part:
                continue
            hardened = part.endswith(("'", "h"))
            index = int(part.rstrip("'h"))
            if index >= HARDENED_OFFSET:
                raise ValueError(f"Path index out of range: {part}")
            key = key._derive_child(index + HARDENED_OFFSET if hardened else index)
        return key

    def _derive_child(self, index: int) -> HDKey:
        if index >= HARDENED_OFFSET:
            data = b"\x00" + self._private_key.secret + index.to_bytes(4, "big")
        else:
            data = self._public_key.format(compressed=True) + index.to_bytes(4, "big")

        digest = hmac.new(self.chain_code, data, hashlib.sha512).digest()
        offset = int.from_bytes(digest[:32], "big")
        if offset >= SECP256K1_N:
            raise ValueError("Invalid child key")

        child_int = (int.from_bytes(self._private_key.secret, "big") + offset) % SECP256K1_N
        if child_int == 0:
            raise ValueError("Invalid child key")

        child_key = PrivateKey(child_int.to_bytes(32, "big"))
        return HDKey(child_key, digest[32:], depth=self.depth + 1)

    def get_private_key_bytes(self) -> bytes:
        return self._private_key.secret

    def public_key_bytes(self) -> bytes:
        """Compressed SEC1 public key."""
        return self._public_key.format(compressed=True)

    def get_address(self, network: NetworkParams) -> str:
        """P2WPKH address for this key"""
        return pubkey_to_p2wpkh_address(self.public_key_bytes(), network)

    def to_wif(self, network: NetworkParams) -> str:
        return private_key_to_wif(self.get_private_key_bytes(), network)

    def sign(self, digest: bytes) -> bytes:
        """
        Sign a 32-byte digest that is already hashed (e.g. a BIP143 sighash).

        Returns:
            DER-encoded low-S signature without sighash byte
        """
        if len(digest) != 32:
            raise ValueError(f"Digest must be 32 bytes, got {len(digest)}")
        return self._private_key.sign(digest, hasher=None)


def validate_mnemonic(mnemonic: str) -> str:
    """
    Normalize and validate a 12-word BIP39 mnemonic.

    Returns:
        The mnemonic with whitespace collapsed and lowercased

    Raises:
        InvalidMnemonic: Wrong word count, unknown word or bad checksum
    """
    words = mnemonic.lower().split()
    if len(words) != MNEMONIC_WORD_COUNT:
        raise InvalidMnemonic(f"Mnemonic must have {MNEMONIC_WORD_COUNT} words, got {len(words)}")

    normalized = " ".join(words)
    try:
        valid = _mnemo.check(normalized)
    except (LookupError, ValueError):
        valid = False
    if not valid:
        raise InvalidMnemonic("Mnemonic failed BIP39 checksum validation")
    return normalized


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """Convert a validated BIP39 mnemonic to its 64-byte seed."""
    return Mnemonic.to_seed(validate_mnemonic(mnemonic), passphrase)


def generate_mnemonic() -> str:
    """Generate a fresh 12-word mnemonic from 128 bits of entropy."""
    return _mnemo.generate(strength=128)
