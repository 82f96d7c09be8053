"""
Key vault: mnemonic to signing key, and the encrypted wallet record.

The record is encrypted with AES-256-GCM. The key is the 32 ASCII bytes of the
MD5 hex digest of the password, which keeps existing wallet files readable.
"""

from __future__ import annotations

import hashlib
import json
import os
import secrets
import time
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from scashwallet.errors import InvalidWalletFile, WrongPassword
from scashwallet.network import NetworkParams
from scashwallet.wallet.bip32 import HDKey, mnemonic_to_seed, validate_mnemonic

ADDRESS_PATH = "m/84'/0'/0'/0/0"

WALLET_FILE_VERSION = "1.0"

NONCE_SIZE = 12
TAG_SIZE = 16
ASSOCIATED_DATA = b"walletFile"

SECURE_FILE_MODE = 0o600


class WalletRecord(BaseModel):
    """Decrypted wallet contents. Field names match the on-disk JSON."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    mnemonic: str
    path: str
    address: str
    private_key: str = Field(alias="privateKey")
    password_hash: str = Field(alias="passwordHash")

    def __repr__(self) -> str:
        return f"WalletRecord(address={self.address!r}, path={self.path!r})"

    __str__ = __repr__


class WalletFile(BaseModel):
    """Backup file wrapping the encrypted record."""

    version: str = WALLET_FILE_VERSION
    encrypted: bool = True
    data: str
    timestamp: int


def password_md5(password: str) -> str:
    return hashlib.md5(password.encode("utf-8")).hexdigest()


def derive(mnemonic: str, network: NetworkParams) -> HDKey:
    """
    Derive the wallet's single signing key.

    Raises:
        InvalidMnemonic: If the phrase is not a valid 12-word BIP-39 mnemonic
    """
    phrase = validate_mnemonic(mnemonic)
    master = HDKey.from_seed(mnemonic_to_seed(phrase))
    return master.derive(ADDRESS_PATH)


def create_wallet_record(mnemonic: str, password: str, network: NetworkParams) -> WalletRecord:
    phrase = validate_mnemonic(mnemonic)
    key = derive(phrase, network)
    record = WalletRecord(
        mnemonic=phrase,
        path=ADDRESS_PATH,
        address=key.get_address(network),
        private_key=key.to_wif(network),
        password_hash=password_md5(password),
    )
    logger.info(f"Created wallet record for {record.address}")
    return record


def _aes_key(password: str) -> bytes:
    return password_md5(password).encode("ascii")


def encrypt_wallet(record: WalletRecord, password: str) -> str:
    """Encrypt ``record`` into a hex blob of nonce || ciphertext || tag."""
    plaintext = json.dumps(record.model_dump(by_alias=True), separators=(",", ":")).encode("utf-8")
    nonce = secrets.token_bytes(NONCE_SIZE)
    ciphertext = AESGCM(_aes_key(password)).encrypt(nonce, plaintext, ASSOCIATED_DATA)
    return (nonce + ciphertext).hex()


def decrypt_wallet(blob: str, password: str) -> WalletRecord:
    """
    Decrypt a blob produced by encrypt_wallet.

    Raises:
        WrongPassword: For any failure, whatever the cause
    """
    try:
        raw = bytes.fromhex(blob)
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise ValueError("blob too short")
        nonce, ciphertext = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
        plaintext = AESGCM(_aes_key(password)).decrypt(nonce, ciphertext, ASSOCIATED_DATA)
        return WalletRecord.model_validate(json.loads(plaintext.decode("utf-8")))
    except (ValueError, TypeError, InvalidTag, ValidationError, UnicodeDecodeError) as e:
        # Log only the failure class; never the blob or password
        logger.debug(f"Wallet decryption failed: {type(e).__name__}")
        raise WrongPassword() from None


def build_wallet_file(blob: str, timestamp_ms: int | None = None) -> WalletFile:
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return WalletFile(data=blob, timestamp=timestamp_ms)


def save_wallet_file(wallet_file: WalletFile, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(wallet_file.model_dump_json(indent=2))
    os.chmod(path, SECURE_FILE_MODE)
    logger.info(f"Wallet file saved to {path}")


def load_wallet_file(path: Path) -> WalletFile:
    """
    Read a wallet backup file.

    Raises:
        InvalidWalletFile: If the file is unreadable or lacks data/encrypted/timestamp
    """
    try:
        content: Any = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidWalletFile(f"Cannot read wallet file {path}: {e}") from e

    if not isinstance(content, dict) or not all(
        k in content for k in ("data", "encrypted", "timestamp")
    ):
        raise InvalidWalletFile(f"{path} is not a wallet file")

    try:
        wallet_file = WalletFile.model_validate(content)
    except ValidationError as e:
        raise InvalidWalletFile(
            f"{path} is not a wallet file: {e.error_count()} invalid field(s)"
        ) from e

    if not wallet_file.encrypted:
        raise InvalidWalletFile(f"{path} does not contain an encrypted wallet")
    return wallet_file
