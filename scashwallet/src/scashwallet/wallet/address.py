"""
SCASH address and script helpers.

Only native segwit addresses are produced. Decoding accepts any witness
program the chain relays (v0 key/script hash, v1 taproot) so that payments and
data-anchoring outputs can target them.
"""

from __future__ import annotations

import hashlib

import base58
import bech32

from scashwallet.network import NetworkParams


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def pubkey_to_p2wpkh_address(pubkey: bytes, network: NetworkParams) -> str:
    """
    Convert a compressed public key to a P2WPKH (native segwit) address.
    """
    if len(pubkey) != 33:
        raise ValueError(f"Invalid compressed pubkey length: {len(pubkey)}")

    address = bech32.encode(network.bech32_hrp, 0, hash160(pubkey))
    if address is None:
        raise ValueError("Failed to encode P2WPKH address")
    return address


def pubkey_to_p2wpkh_script(pubkey: bytes) -> bytes:
    """Create P2WPKH scriptPubKey (OP_0 <20-byte-hash>)"""
    return bytes([0x00, 0x14]) + hash160(pubkey)


def address_to_scriptpubkey(address: str, network: NetworkParams) -> bytes:
    """
    Convert a bech32 address of the given network to its scriptPubKey.

    Raises:
        ValueError: If the address is malformed, belongs to another network or
            uses an unsupported witness program
    """
    witver, witprog = bech32.decode(network.bech32_hrp, address)
    if witver is None or witprog is None:
        raise ValueError(f"Invalid {network.name} address: {address}")

    program = bytes(witprog)
    if witver == 0:
        if len(program) == 20:
            # P2WPKH: OP_0 <20-byte-pubkeyhash>
            return bytes([0x00, 0x14]) + program
        if len(program) == 32:
            # P2WSH: OP_0 <32-byte-scripthash>
            return bytes([0x00, 0x20]) + program
    elif witver == 1 and len(program) == 32:
        # P2TR: OP_1 <32-byte-pubkey>
        return bytes([0x51, 0x20]) + program

    raise ValueError(f"Unsupported witness program v{witver} ({len(program)} bytes): {address}")


def scriptpubkey_to_address(scriptpubkey: bytes, network: NetworkParams) -> str:
    """Convert a witness scriptPubKey back to an address."""
    # P2WPKH / P2WSH
    if scriptpubkey[:2] in (b"\x00\x14", b"\x00\x20") and len(scriptpubkey) == scriptpubkey[1] + 2:
        witver = 0
    # P2TR
    elif scriptpubkey[:2] == b"\x51\x20" and len(scriptpubkey) == 34:
        witver = 1
    else:
        raise ValueError(f"Unsupported scriptPubKey: {scriptpubkey.hex()}")

    result = bech32.encode(network.bech32_hrp, witver, scriptpubkey[2:])
    if result is None:
        raise ValueError(f"Failed to encode address for scriptPubKey: {scriptpubkey.hex()}")
    return result


def validate_address(address: str, network: NetworkParams) -> bool:
    """Check that ``address`` is a well-formed segwit address for ``network``."""
    try:
        address_to_scriptpubkey(address, network)
    except ValueError:
        return False
    return True


def private_key_to_wif(private_key: bytes, network: NetworkParams, compressed: bool = True) -> str:
    """Encode a 32-byte private key in Wallet Import Format."""
    if len(private_key) != 32:
        raise ValueError(f"Invalid private key length: {len(private_key)}")
    payload = bytes([network.wif]) + private_key
    if compressed:
        payload += b"\x01"
    return base58.b58encode_check(payload).decode("ascii")


def wif_to_private_key(wif: str, network: NetworkParams) -> bytes:
    """Decode a WIF string, checking the version byte."""
    try:
        payload = base58.b58decode_check(wif)
    except ValueError as e:
        raise ValueError(f"Invalid WIF checksum: {e}") from e

    if payload[0] != network.wif:
        raise ValueError(f"WIF version byte {payload[0]:#x} does not match network")
    if len(payload) == 34 and payload[-1] == 0x01:
        return payload[1:33]
    if len(payload) == 33:
        return payload[1:]
    raise ValueError(f"Invalid WIF payload length: {len(payload)}")
