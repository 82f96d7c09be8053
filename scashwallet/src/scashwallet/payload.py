"""
Boundary to the third-party data-anchoring ("engraving") codec.

The codec turns text into a list of value-bearing outputs and recovers text
from a transaction's outputs. Its wire format is opaque here; the wallet only
relies on the PayloadCodec contract below. A codec is constructed once at
start-up and passed to whoever needs it.
"""

from __future__ import annotations

import html
import importlib
import re
import unicodedata
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from loguru import logger

from scashwallet.network import NetworkParams
from scashwallet.wallet.models import PayloadOutput

_TAG_RE = re.compile(r"<[^>]*>")


@runtime_checkable
class PayloadCodec(Protocol):
    def create_outputs(self, text: str) -> list[PayloadOutput]:
        """Encode ``text`` as ordered data-carrying outputs."""
        ...

    def is_payload_address(self, address: str) -> bool:
        """True if ``address`` is a data-carrying address of this codec."""
        ...

    def parse_outputs(self, outputs: Sequence[Mapping[str, Any]]) -> str | None:
        """Recover the text embedded in a transaction's outputs, if any."""
        ...


@dataclass(frozen=True)
class PayloadMessage:
    content: str
    # Transaction only has data-carrying outputs
    is_pure_message: bool
    is_from_self: bool


def output_address(output: Mapping[str, Any]) -> str | None:
    """Address of an explorer/RPC output entry, in either of the common shapes."""
    script = output.get("scriptPubKey")
    if isinstance(script, Mapping) and script.get("address"):
        return script["address"]
    return output.get("address")


def sanitize_text(text: str) -> str:
    """Reduce decoded payload text to inert plain text.

    Markup is removed (after entity decoding, so escaped tags go too) and
    control characters other than newline and tab are dropped.
    """
    plain = _TAG_RE.sub("", text)
    plain = _TAG_RE.sub("", html.unescape(plain))
    return "".join(
        ch for ch in plain if ch in "\n\t" or not unicodedata.category(ch).startswith("C")
    ).strip()


def parse_payload_message(
    codec: PayloadCodec,
    outputs: Sequence[Mapping[str, Any]],
    sender_address: str,
    own_address: str,
) -> PayloadMessage | None:
    """
    Extract an engraved message from a transaction's outputs.

    Returns None when the transaction carries no payload or the codec cannot
    decode it.
    """
    if not outputs:
        return None

    addresses = [output_address(o) for o in outputs]
    if not any(a and codec.is_payload_address(a) for a in addresses):
        return None

    try:
        message = codec.parse_outputs(outputs)
    except Exception as e:
        logger.warning(f"Failed to decode payload: {type(e).__name__}: {e}")
        return None

    if not message:
        return None

    content = sanitize_text(message)
    if not content:
        return None

    normal_outputs = [a for a in addresses if a and not codec.is_payload_address(a)]

    return PayloadMessage(
        content=content,
        is_pure_message=not normal_outputs,
        is_from_self=sender_address.lower() == own_address.lower(),
    )


def format_preview(message: str, max_length: int = 50) -> str:
    if not message:
        return ""
    if len(message) <= max_length:
        return message
    return message[:max_length] + "..."


def load_payload_codec(import_path: str, network: NetworkParams) -> PayloadCodec:
    """
    Instantiate a codec from a ``module:attribute`` path.

    The attribute is called with the network parameters and must return an
    object satisfying PayloadCodec.

    Raises:
        ValueError: If the path is malformed or the result is not a codec
        ImportError: If the module cannot be imported
    """
    module_name, sep, attr = import_path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Payload codec must be given as module:attribute, got {import_path!r}")

    factory = getattr(importlib.import_module(module_name), attr)
    codec = factory(network)
    if not isinstance(codec, PayloadCodec):
        raise ValueError(f"{import_path} did not produce a PayloadCodec")

    logger.info(f"Loaded payload codec {import_path}")
    return codec
