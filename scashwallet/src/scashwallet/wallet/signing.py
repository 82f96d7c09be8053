"""
Segwit transaction serialization and P2WPKH input signing (BIP143).
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from typing import Protocol

from scashwallet.wallet.address import hash160

SIGHASH_ALL = 0x01
SEGWIT_MARKER = b"\x00\x01"


class TransactionError(ValueError):
    """Malformed transaction data or an invalid signing request."""


class Signer(Protocol):
    """Minimal key capability needed to sign P2WPKH inputs."""

    def public_key_bytes(self) -> bytes: ...

    def sign(self, digest: bytes) -> bytes: ...


@dataclass
class TxInput:
    txid_le: bytes
    vout: int
    script: bytes = b""
    sequence: bytes = b"\xff\xff\xff\xff"
    witness: list[bytes] = field(default_factory=list)


@dataclass
class TxOutput:
    value: int
    script: bytes


@dataclass
class Transaction:
    version: bytes
    inputs: list[TxInput]
    outputs: list[TxOutput]
    locktime: bytes = bytes(4)

    @property
    def has_witness(self) -> bool:
        return any(inp.witness for inp in self.inputs)


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


# CompactSize prefixes and the little-endian width that follows each
_VARINT_WIDTHS = {0xFD: "<H", 0xFE: "<I", 0xFF: "<Q"}


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return struct.pack("<B", value)
    for prefix, fmt in _VARINT_WIDTHS.items():
        if value < 1 << (8 * struct.calcsize(fmt)):
            return struct.pack("<B" + fmt[1:], prefix, value)
    raise ValueError(f"Value too large for a varint: {value}")


def _serialize_output(out: TxOutput) -> bytes:
    return struct.pack("<Q", out.value) + encode_varint(len(out.script)) + out.script


def serialize_transaction(tx: Transaction, include_witness: bool = True) -> bytes:
    """Serialize to wire format. Witness data is written only when present."""
    with_witness = include_witness and tx.has_witness

    parts = [tx.version]
    if with_witness:
        parts.append(SEGWIT_MARKER)

    parts.append(encode_varint(len(tx.inputs)))
    for inp in tx.inputs:
        parts += [
            inp.txid_le,
            struct.pack("<I", inp.vout),
            encode_varint(len(inp.script)),
            inp.script,
            inp.sequence,
        ]

    parts.append(encode_varint(len(tx.outputs)))
    parts += [_serialize_output(out) for out in tx.outputs]

    if with_witness:
        for inp in tx.inputs:
            parts.append(encode_varint(len(inp.witness)))
            for item in inp.witness:
                parts += [encode_varint(len(item)), item]

    parts.append(tx.locktime)
    return b"".join(parts)


def compute_txid(tx: Transaction) -> str:
    """Double SHA256 of the non-witness serialization, in RPC byte order."""
    return hash256(serialize_transaction(tx, include_witness=False))[::-1].hex()


class _Cursor:
    """Forward-only reader over a raw transaction."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def take(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.data):
            raise TransactionError(f"Truncated transaction at byte {self.pos}")
        chunk = self.data[self.pos : end]
        self.pos = end
        return chunk

    def uint(self, fmt: str) -> int:
        (value,) = struct.unpack(fmt, self.take(struct.calcsize(fmt)))
        return value

    def varint(self) -> int:
        prefix = self.uint("<B")
        fmt = _VARINT_WIDTHS.get(prefix)
        return prefix if fmt is None else self.uint(fmt)

    def var_bytes(self) -> bytes:
        return self.take(self.varint())

    def peek(self, size: int) -> bytes:
        return self.data[self.pos : self.pos + size]


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    """
    Parse a raw transaction, with or without witness data.

    Raises:
        TransactionError: If the data is truncated or has trailing bytes
    """
    cur = _Cursor(tx_bytes)
    version = cur.take(4)

    segwit = cur.peek(2) == SEGWIT_MARKER
    if segwit:
        cur.take(2)

    inputs = [
        TxInput(
            txid_le=cur.take(32),
            vout=cur.uint("<I"),
            script=cur.var_bytes(),
            sequence=cur.take(4),
        )
        for _ in range(cur.varint())
    ]
    outputs = [TxOutput(value=cur.uint("<Q"), script=cur.var_bytes()) for _ in range(cur.varint())]

    if segwit:
        for inp in inputs:
            inp.witness = [cur.var_bytes() for _ in range(cur.varint())]

    locktime = cur.take(4)
    if cur.pos != len(tx_bytes):
        raise TransactionError(f"{len(tx_bytes) - cur.pos} trailing byte(s) after transaction")

    return Transaction(version, inputs, outputs, locktime)


def compute_sighash_segwit(
    tx: Transaction,
    input_index: int,
    script_code: bytes,
    value: int,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """BIP143 signature digest for one input."""
    if input_index >= len(tx.inputs):
        raise TransactionError(f"Input index {input_index} out of range")

    hash_prevouts = hash256(
        b"".join(inp.txid_le + struct.pack("<I", inp.vout) for inp in tx.inputs)
    )
    hash_sequence = hash256(b"".join(inp.sequence for inp in tx.inputs))
    hash_outputs = hash256(b"".join(_serialize_output(out) for out in tx.outputs))

    target = tx.inputs[input_index]

    preimage = (
        tx.version
        + hash_prevouts
        + hash_sequence
        + target.txid_le
        + struct.pack("<I", target.vout)
        + encode_varint(len(script_code))
        + script_code
        + struct.pack("<Q", value)
        + target.sequence
        + hash_outputs
        + tx.locktime
        + struct.pack("<I", sighash_type)
    )

    return hash256(preimage)


def create_p2wpkh_script_code(pubkey_bytes: bytes) -> bytes:
    """scriptCode for P2WPKH signing (BIP143).

    OP_DUP OP_HASH160 <20-byte-pubkeyhash> OP_EQUALVERIFY OP_CHECKSIG, without
    length prefix.
    """
    return b"\x76\xa9\x14" + hash160(pubkey_bytes) + b"\x88\xac"


def sign_p2wpkh_input(
    tx: Transaction,
    input_index: int,
    value: int,
    signer: Signer,
    sighash_type: int = SIGHASH_ALL,
) -> bytes:
    """Sign a P2WPKH input.

    Args:
        tx: The transaction to sign
        input_index: Index of the input to sign
        value: The value of the input being spent (in satoshis)
        signer: Key that owns the input
        sighash_type: Sighash type (default SIGHASH_ALL)

    Returns:
        DER-encoded signature with sighash type byte appended
    """
    script_code = create_p2wpkh_script_code(signer.public_key_bytes())
    sighash = compute_sighash_segwit(tx, input_index, script_code, value, sighash_type)
    return signer.sign(sighash) + bytes([sighash_type])


def create_witness_stack(signature: bytes, pubkey_bytes: bytes) -> list[bytes]:
    return [signature, pubkey_bytes]
