"""
Transaction assembly and signing for the single-address wallet.

Builds the transaction from:
- the selected UTXOs (all owned by the wallet address)
- payment and/or payload outputs, in caller order
- an optional platform fee output
- a change output back to the wallet address

Fee accounting takes exactly one of two explicitly named arguments:
``miner_fee`` is the network fee alone, while ``combined_fee`` is the network
fee plus the platform fee.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from loguru import logger

from scashwallet.network import NetworkParams
from scashwallet.units import coin_to_sat, sat_to_coin, to_decimal
from scashwallet.wallet.address import address_to_scriptpubkey, pubkey_to_p2wpkh_script
from scashwallet.wallet.models import PayloadOutput, SignedTransactionResult, SpendOutput, Unspent
from scashwallet.wallet.signing import (
    Signer,
    Transaction,
    TxInput,
    TxOutput,
    compute_txid,
    create_witness_stack,
    serialize_transaction,
    sign_p2wpkh_input,
)

TX_VERSION = 2


def _resolve_fees(
    miner_fee: Decimal | None, combined_fee: Decimal | None, platform_fee: Decimal
) -> tuple[Decimal, Decimal]:
    """Return (network fee, total fee budget)."""
    if (miner_fee is None) == (combined_fee is None):
        raise ValueError("Exactly one of miner_fee or combined_fee must be given")

    if combined_fee is not None:
        combined = to_decimal(combined_fee)
        network_fee = combined - platform_fee
        if network_fee < 0:
            raise ValueError(f"combined_fee {combined} is smaller than platform fee {platform_fee}")
        return network_fee, combined

    assert miner_fee is not None
    network_fee = to_decimal(miner_fee)
    if network_fee < 0:
        raise ValueError(f"miner_fee must not be negative, got {network_fee}")
    return network_fee, network_fee + platform_fee


def build_unsigned_transaction(
    utxos: Sequence[Unspent],
    outputs: Sequence[SpendOutput | PayloadOutput],
    own_address: str,
    network: NetworkParams,
    network_fee_sat: int,
    platform_fee_sat: int = 0,
) -> tuple[Transaction, list[int], int]:
    """
    Lay out inputs and outputs.

    Returns:
        (transaction, input values in sats, change in sats)

    Raises:
        ValueError: On empty inputs, non-positive output values, undecodable
            addresses or when outputs plus fee exceed the inputs
    """
    if not utxos:
        raise ValueError("At least one UTXO is required")
    if not outputs:
        raise ValueError("At least one output is required")

    inputs: list[TxInput] = []
    input_values: list[int] = []
    for utxo in utxos:
        value = coin_to_sat(utxo.amount)
        if value <= 0:
            raise ValueError(f"UTXO {utxo.outpoint} has non-positive value")
        inputs.append(TxInput(txid_le=bytes.fromhex(utxo.txid)[::-1], vout=utxo.vout))
        input_values.append(value)

    tx_outputs: list[TxOutput] = []
    for out in outputs:
        value = coin_to_sat(out.amount)
        if value <= 0:
            raise ValueError(f"Output to {out.address} has non-positive value {out.amount}")
        tx_outputs.append(TxOutput(value, address_to_scriptpubkey(out.address, network)))

    if platform_fee_sat > 0:
        tx_outputs.append(
            TxOutput(
                platform_fee_sat,
                address_to_scriptpubkey(network.platform_fee_address, network),
            )
        )

    total_output = sum(o.value for o in tx_outputs)
    change = sum(input_values) - total_output - network_fee_sat
    if change < 0:
        raise ValueError(
            f"Outputs ({total_output}) plus fee ({network_fee_sat}) exceed inputs "
            f"({sum(input_values)}) by {-change} sats"
        )

    if change > 0:
        tx_outputs.append(TxOutput(change, address_to_scriptpubkey(own_address, network)))

    tx = Transaction(
        version=TX_VERSION.to_bytes(4, "little"),
        inputs=inputs,
        outputs=tx_outputs,
    )
    return tx, input_values, change


def sign_transaction(
    utxos: Sequence[Unspent],
    outputs: Sequence[SpendOutput | PayloadOutput],
    *,
    own_address: str,
    signing_key: Signer,
    network: NetworkParams,
    miner_fee: Decimal | None = None,
    combined_fee: Decimal | None = None,
    platform_fee: Decimal | str | int = Decimal(0),
) -> SignedTransactionResult:
    """
    Build, sign and serialize a transaction spending ``utxos``.

    Args:
        utxos: Inputs, all locked to the key's P2WPKH address
        outputs: Payment / payload outputs
        own_address: Change destination
        signing_key: Key owning every input
        network: Chain parameters for address decoding and the fee address
        miner_fee: Network fee, platform fee NOT included
        combined_fee: Network fee plus platform fee
        platform_fee: Amount paid to the platform fee address (0 = none)

    Returns:
        SignedTransactionResult. Signing errors produce success=False instead
        of an exception; callers must check ``success`` before broadcasting.

    Raises:
        ValueError: On accounting or output precondition violations
    """
    app_fee = to_decimal(platform_fee)
    if app_fee < 0:
        raise ValueError(f"platform_fee must not be negative, got {app_fee}")

    network_fee, fee_budget = _resolve_fees(miner_fee, combined_fee, app_fee)
    network_fee_sat = coin_to_sat(network_fee)
    platform_fee_sat = coin_to_sat(app_fee)

    tx, input_values, change_sat = build_unsigned_transaction(
        utxos, outputs, own_address, network, network_fee_sat, platform_fee_sat
    )

    total_input_sat = sum(input_values)
    total_output_sat = total_input_sat - change_sat - network_fee_sat

    logger.debug(
        f"Assembling tx: {len(tx.inputs)} inputs, {len(tx.outputs)} outputs, "
        f"network fee {network_fee}, platform fee {app_fee}, change {sat_to_coin(change_sat)}"
    )

    result = SignedTransactionResult(
        success=False,
        rawtx="",
        txid="",
        total_input=sat_to_coin(total_input_sat),
        total_output=sat_to_coin(total_output_sat),
        change=sat_to_coin(change_sat),
        fee=sat_to_coin(network_fee_sat),
        fee_rate=fee_budget,
        platform_fee=app_fee,
    )

    try:
        pubkey = signing_key.public_key_bytes()
        own_script = pubkey_to_p2wpkh_script(pubkey)
        for utxo in utxos:
            if bytes.fromhex(utxo.scriptpubkey) != own_script:
                raise ValueError(f"UTXO {utxo.outpoint} is not locked to the signing key")
        signatures = [
            sign_p2wpkh_input(tx, index, value, signing_key)
            for index, value in enumerate(input_values)
        ]
        for inp, signature in zip(tx.inputs, signatures):
            inp.witness = create_witness_stack(signature, pubkey)
    except Exception as e:
        logger.error(f"Signing failed: {type(e).__name__}: {e}")
        result.error = str(e) or type(e).__name__
        return result

    result.success = True
    result.rawtx = serialize_transaction(tx).hex()
    result.txid = compute_txid(tx)

    logger.info(f"Signed transaction {result.txid} ({len(result.rawtx) // 2} bytes)")
    return result
