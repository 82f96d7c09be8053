"""
SCASH wallet service.

Ties the pure wallet core to the chain backends: fee quotes, UTXO snapshots,
input selection, signing, broadcast and the pending-transaction ledger.

A spend is done in two steps. ``prepare_send`` / ``prepare_engrave`` choose
inputs and fees for a UTXO snapshot so they can be shown to the user;
``send`` / ``engrave`` then unlock the key, sign and broadcast that selection.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from decimal import Decimal

from loguru import logger

from scashwallet.backends.base import BlockchainBackend
from scashwallet.backends.explorer import ExplorerClient
from scashwallet.errors import SigningFailure, WalletError
from scashwallet.network import NetworkParams
from scashwallet.payload import PayloadCodec, PayloadMessage, parse_payload_message
from scashwallet.units import to_decimal
from scashwallet.wallet.address import validate_address, wif_to_private_key
from scashwallet.wallet.coin_selection import select_utxos, spendable_balance
from scashwallet.wallet.fees import estimate_fee, platform_fee
from scashwallet.wallet.history import HistoryRecord, PendingLedger, mark_consumed
from scashwallet.wallet.models import (
    ClassifiedTransaction,
    CoinSelection,
    PayloadOutput,
    PendingTransaction,
    SignedTransactionResult,
    SpendOutput,
    Unspent,
)
from scashwallet.wallet.tx_builder import sign_transaction
from scashwallet.wallet.vault import (
    WalletRecord,
    create_wallet_record,
    decrypt_wallet,
    derive,
    encrypt_wallet,
)

DEFAULT_CONF_TARGET = 6
DEFAULT_ENGRAVE_PLATFORM_FEE = Decimal("0.05")


class WalletService:
    """
    Single-address SCASH wallet.

    Holds no key material: every signing operation decrypts the wallet blob
    with the caller's password and drops the key afterwards.
    """

    def __init__(
        self,
        backend: BlockchainBackend,
        network: NetworkParams,
        ledger: PendingLedger | None = None,
        explorer: ExplorerClient | None = None,
        codec: PayloadCodec | None = None,
        fee_conf_target: int = DEFAULT_CONF_TARGET,
        engrave_platform_fee: Decimal = DEFAULT_ENGRAVE_PLATFORM_FEE,
        charge_send_platform_fee: bool = True,
    ):
        self.backend = backend
        self.network = network
        self.ledger = ledger if ledger is not None else PendingLedger()
        self.explorer = explorer
        self.codec = codec
        self.fee_conf_target = fee_conf_target
        self.engrave_platform_fee = to_decimal(engrave_platform_fee)
        self.charge_send_platform_fee = charge_send_platform_fee

    # Vault

    def create_wallet(self, mnemonic: str, password: str) -> tuple[WalletRecord, str]:
        """Build a wallet record from ``mnemonic`` and return it with its encrypted blob."""
        record = create_wallet_record(mnemonic, password, self.network)
        return record, encrypt_wallet(record, password)

    def unlock(self, blob: str, password: str) -> WalletRecord:
        """
        Raises:
            WrongPassword: If the blob does not decrypt with ``password``
        """
        return decrypt_wallet(blob, password)

    # Chain state

    async def get_utxos(self, address: str) -> list[Unspent]:
        """UTXO snapshot with outputs spent by our pending transactions marked unusable."""
        utxos = await self.backend.get_utxos(address)
        return mark_consumed(utxos, self.ledger.consumed_outpoints())

    async def get_balance(self, address: str) -> Decimal:
        return spendable_balance(await self.get_utxos(address))

    async def get_fee_rate(self) -> Decimal:
        return await self.backend.estimate_fee(self.fee_conf_target)

    # Selection

    def _select(
        self,
        utxos: Sequence[Unspent],
        outputs: list[SpendOutput | PayloadOutput],
        fee_rate: Decimal,
        app_fee: Decimal,
    ) -> CoinSelection:
        """
        Select inputs for ``outputs`` plus fees.

        The fee depends on the input count and the input count on the fee, so
        selection is repeated until the count stops growing. Selection is a
        greedy prefix and the target only grows, so this ends after at most
        one pass per UTXO.
        """
        base = sum((o.amount for o in outputs), Decimal(0))
        # Outputs, platform fee if any, and change
        output_count = len(outputs) + (1 if app_fee > 0 else 0) + 1

        input_count = 1
        while True:
            fee = estimate_fee(input_count, output_count, fee_rate)
            required = base + fee.fee_coin + app_fee
            selected = select_utxos(utxos, required)
            if len(selected) <= input_count:
                break
            input_count = len(selected)

        total = sum((u.amount for u in selected), Decimal(0))
        logger.debug(
            f"Selection: {len(selected)} input(s), {output_count} output(s), "
            f"fee {fee.fee_coin}, platform fee {app_fee}, required {required}"
        )
        return CoinSelection(
            utxos=selected,
            total_value=total,
            fee=fee,
            platform_fee=app_fee,
            required=required,
            outputs=outputs,
        )

    def prepare_send(
        self,
        utxos: Sequence[Unspent],
        address: str,
        amount: Decimal | str,
        fee_rate: Decimal,
    ) -> CoinSelection:
        """
        Raises:
            ValueError: On an invalid destination or non-positive amount
            InsufficientFunds: If usable UTXOs do not cover amount and fees
        """
        value = to_decimal(amount)
        if value <= 0:
            raise ValueError(f"Amount must be positive, got {amount}")
        if not validate_address(address, self.network):
            raise ValueError(f"Invalid {self.network.name} address: {address}")

        app_fee = platform_fee(value) if self.charge_send_platform_fee else Decimal(0)
        return self._select(utxos, [SpendOutput(address=address, amount=value)], fee_rate, app_fee)

    def prepare_engrave(
        self, utxos: Sequence[Unspent], text: str, fee_rate: Decimal
    ) -> CoinSelection:
        """
        Raises:
            WalletError: If no payload codec is configured
            ValueError: On empty text or a codec that produced no outputs
            InsufficientFunds: If usable UTXOs do not cover payload and fees
        """
        if self.codec is None:
            raise WalletError("Engraving is not available: no payload codec configured")
        if not text.strip():
            raise ValueError("Nothing to engrave")

        outputs: list[SpendOutput | PayloadOutput] = list(self.codec.create_outputs(text))
        if not outputs:
            raise ValueError("Payload codec produced no outputs")
        return self._select(utxos, outputs, fee_rate, self.engrave_platform_fee)

    # Signing and broadcast

    async def _sign_and_broadcast(
        self,
        blob: str,
        password: str,
        selection: CoinSelection,
        combined: bool,
    ) -> SignedTransactionResult:
        record = decrypt_wallet(blob, password)
        key = derive(record.mnemonic, self.network)
        own_address = key.get_address(self.network)
        if own_address != record.address:
            raise WalletError("Wallet record address does not match its mnemonic")
        if wif_to_private_key(record.private_key, self.network) != key.get_private_key_bytes():
            raise WalletError("Wallet record private key does not match its mnemonic")

        if combined:
            result = sign_transaction(
                selection.utxos,
                selection.outputs,
                own_address=own_address,
                signing_key=key,
                network=self.network,
                combined_fee=selection.fee.fee_coin + selection.platform_fee,
                platform_fee=selection.platform_fee,
            )
        else:
            result = sign_transaction(
                selection.utxos,
                selection.outputs,
                own_address=own_address,
                signing_key=key,
                network=self.network,
                miner_fee=selection.fee.fee_coin,
                platform_fee=selection.platform_fee,
            )

        if not result.success:
            raise SigningFailure(result.error or "Signing failed")

        txid = await self.backend.broadcast_transaction(result.rawtx)
        if txid != result.txid:
            logger.warning(f"Node reported txid {txid}, computed {result.txid}")
            result.txid = txid

        self.ledger.add(
            PendingTransaction(
                id=txid,
                rawtx=result.rawtx,
                total_input=result.total_input,
                total_output=result.total_output,
                change=result.change,
                fee_rate=result.fee_rate,
                platform_fee=result.platform_fee,
                consumed=list(selection.utxos),
                outputs=list(selection.outputs),
                timestamp=int(time.time() * 1000),
            )
        )
        return result

    async def send(
        self, blob: str, password: str, selection: CoinSelection
    ) -> SignedTransactionResult:
        """
        Sign and broadcast a selection made by prepare_send.

        Raises:
            WrongPassword: If the blob does not decrypt
            SigningFailure: If signing failed; nothing was broadcast
            BroadcastRejected: If the node refused the transaction
        """
        return await self._sign_and_broadcast(blob, password, selection, combined=False)

    async def engrave(
        self, blob: str, password: str, selection: CoinSelection
    ) -> SignedTransactionResult:
        """Sign and broadcast a selection made by prepare_engrave. Raises as send()."""
        return await self._sign_and_broadcast(blob, password, selection, combined=True)

    # Pending and history

    async def update_pending(self) -> list[str]:
        """Flip pending entries that now have a block hash. Returns their txids."""
        confirmed = []
        for entry in self.ledger.pending():
            status = await self.backend.get_transaction(entry.id)
            if status is not None and status.is_confirmed and self.ledger.mark_confirmed(entry.id):
                confirmed.append(entry.id)
        return confirmed

    def _require_explorer(self) -> ExplorerClient:
        if self.explorer is None:
            raise WalletError("No explorer configured")
        return self.explorer

    async def get_history(self, address: str) -> list[ClassifiedTransaction]:
        return await self._require_explorer().get_classified_transactions(address)

    async def get_messages(self, address: str) -> list[tuple[HistoryRecord, PayloadMessage]]:
        """Engraved messages found in the address history."""
        if self.codec is None:
            return []

        messages = []
        for record in await self._require_explorer().get_address_transactions(address):
            outputs = (record.raw_transaction or {}).get("vout") or []
            sender = record.senders[0].address if record.senders else ""
            message = parse_payload_message(self.codec, outputs, sender, address)
            if message is not None:
                messages.append((record, message))
        return messages

    async def close(self) -> None:
        await self.backend.close()
        if self.explorer is not None:
            await self.explorer.close()
