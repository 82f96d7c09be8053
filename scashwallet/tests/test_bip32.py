"""
Tests for BIP32/BIP39 key derivation.
"""

from __future__ import annotations

import bech32
import pytest
from coincurve import PublicKey

from scashwallet.errors import InvalidMnemonic
from scashwallet.wallet.address import hash160
from scashwallet.wallet.bip32 import (
    HDKey,
    generate_mnemonic,
    mnemonic_to_seed,
    validate_mnemonic,
)
from scashwallet.wallet.vault import ADDRESS_PATH, derive

# BIP84 reference vector for the "abandon ... about" mnemonic, m/84'/0'/0'/0/0
BIP84_PUBKEY = "0330d54fd0dd420a6e5f8d3624f5f3482cae350f79d5f0753bf5beef9c2d91af3c"
BIP84_WIF = "KyZpNDKnfs94vbrwhJneDi77V6jF64PWPF8x5cdJb8ifgg2DUc9d"
BIP84_BITCOIN_ADDRESS = "bc1qcr8te4kr609gcawutmrza0j4xv80jy8z306fyu"


class TestDerivation:
    def test_bip84_public_key(self, signing_key: HDKey):
        assert signing_key.public_key_bytes().hex() == BIP84_PUBKEY

    def test_bip84_wif(self, signing_key: HDKey, mainnet):
        assert signing_key.to_wif(mainnet) == BIP84_WIF

    def test_address_uses_scash_hrp(self, own_address: str):
        assert own_address.startswith("scash1q")

    def test_address_program_matches_reference(self, own_address: str):
        """Same witness program as the Bitcoin vector, only the HRP differs."""
        _, scash_program = bech32.decode("scash", own_address)
        _, btc_program = bech32.decode("bc", BIP84_BITCOIN_ADDRESS)
        assert bytes(scash_program) == bytes(btc_program)
        assert bytes(scash_program) == hash160(bytes.fromhex(BIP84_PUBKEY))

    def test_testnet_address(self, sample_mnemonic: str, testnet):
        key = derive(sample_mnemonic, testnet)
        address = key.get_address(testnet)
        assert address.startswith("bcrt1q")
        witver, program = bech32.decode("bcrt", address)
        assert witver == 0
        assert bytes(program) == hash160(key.public_key_bytes())

    def test_deterministic(self, sample_mnemonic: str, mainnet):
        a = derive(sample_mnemonic, mainnet)
        b = derive(sample_mnemonic, mainnet)
        assert a.get_private_key_bytes() == b.get_private_key_bytes()
        assert a.get_address(mainnet) == b.get_address(mainnet)

    def test_manual_path_matches(self, sample_mnemonic: str):
        master = HDKey.from_seed(mnemonic_to_seed(sample_mnemonic))
        key = master.derive(ADDRESS_PATH)
        assert key.public_key_bytes().hex() == BIP84_PUBKEY
        assert key.depth == 5

    def test_hardened_h_notation(self, sample_mnemonic: str):
        master = HDKey.from_seed(mnemonic_to_seed(sample_mnemonic))
        assert (
            master.derive("m/84h/0h/0h/0/0").public_key_bytes()
            == master.derive("m/84'/0'/0'/0/0").public_key_bytes()
        )

    def test_invalid_path(self, sample_mnemonic: str):
        master = HDKey.from_seed(mnemonic_to_seed(sample_mnemonic))
        with pytest.raises(ValueError, match="must start with 'm'"):
            master.derive("84'/0'")

    def test_different_mnemonic_different_key(self, mainnet):
        other = derive(generate_mnemonic(), mainnet)
        assert other.public_key_bytes().hex() != BIP84_PUBKEY


class TestMnemonicValidation:
    def test_valid(self, sample_mnemonic: str):
        assert validate_mnemonic(sample_mnemonic) == sample_mnemonic

    def test_normalizes_case_and_whitespace(self, sample_mnemonic: str):
        messy = "  " + sample_mnemonic.upper().replace(" ", "   ") + "\n"
        assert validate_mnemonic(messy) == sample_mnemonic

    def test_wrong_word_count(self):
        with pytest.raises(InvalidMnemonic, match="12 words"):
            validate_mnemonic("abandon " * 11 + "about" + " abandon")

    def test_twenty_four_words_rejected(self):
        phrase = " ".join(["abandon"] * 23 + ["art"])
        with pytest.raises(InvalidMnemonic):
            validate_mnemonic(phrase)

    def test_bad_checksum(self):
        with pytest.raises(InvalidMnemonic, match="checksum"):
            validate_mnemonic(" ".join(["abandon"] * 12))

    def test_unknown_word(self):
        with pytest.raises(InvalidMnemonic):
            validate_mnemonic(" ".join(["abandon"] * 11 + ["notaword"]))

    def test_derive_rejects_invalid(self, mainnet):
        with pytest.raises(InvalidMnemonic):
            derive("hello world", mainnet)


class TestGenerateMnemonic:
    def test_twelve_words(self):
        assert len(generate_mnemonic().split()) == 12

    def test_valid_checksum(self):
        phrase = generate_mnemonic()
        assert validate_mnemonic(phrase) == phrase

    def test_random(self):
        assert generate_mnemonic() != generate_mnemonic()


class TestSign:
    def test_signature_verifies(self, signing_key: HDKey):
        digest = bytes(range(32))
        signature = signing_key.sign(digest)
        assert PublicKey(signing_key.public_key_bytes()).verify(signature, digest, hasher=None)

    def test_der_encoded(self, signing_key: HDKey):
        signature = signing_key.sign(b"\x11" * 32)
        assert signature[0] == 0x30
        assert signature[1] == len(signature) - 2

    def test_deterministic_rfc6979(self, signing_key: HDKey):
        assert signing_key.sign(b"\x22" * 32) == signing_key.sign(b"\x22" * 32)

    def test_rejects_unhashed_message(self, signing_key: HDKey):
        with pytest.raises(ValueError, match="32 bytes"):
            signing_key.sign(b"not a digest")
