"""
Tests for the wallet service flows with a mocked backend.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest

from scashwallet.backends.base import BlockchainBackend, TxStatus
from scashwallet.backends.explorer import ExplorerClient
from scashwallet.errors import (
    BroadcastRejected,
    InsufficientFunds,
    SigningFailure,
    WalletError,
    WrongPassword,
)
from scashwallet.wallet.address import (
    address_to_scriptpubkey,
    private_key_to_wif,
    scriptpubkey_to_address,
)
from scashwallet.wallet.history import HistoryRecord
from scashwallet.wallet.models import PayloadOutput, PendingStatus, SignedTransactionResult
from scashwallet.wallet.service import WalletService
from scashwallet.wallet.signing import compute_txid, deserialize_transaction
from scashwallet.wallet.vault import encrypt_wallet

PASSWORD = "hunter22"
RATE = Decimal("0.0001")  # 10 sat/vB


class StubCodec:
    def __init__(self, network):
        self.network = network

    def create_outputs(self, text: str) -> list[PayloadOutput]:
        return [
            PayloadOutput(
                scriptpubkey_to_address(b"\x00\x14" + bytes([0xD0 + i]) * 20, self.network),
                Decimal("0.00001"),
            )
            for i in range((len(text) + 7) // 8)
        ]

    def is_payload_address(self, address: str) -> bool:
        # Eight chunks cover every text used in these tests
        return address in {o.address for o in self.create_outputs("x" * 64)}

    def parse_outputs(self, outputs: Sequence[Mapping[str, Any]]) -> str | None:
        return "decoded message"


def _txid_of(rawtx: str) -> str:
    return compute_txid(deserialize_transaction(bytes.fromhex(rawtx)))


@pytest.fixture
def backend() -> AsyncMock:
    mock = AsyncMock(spec=BlockchainBackend)
    mock.broadcast_transaction.side_effect = _txid_of
    mock.estimate_fee.return_value = RATE
    return mock


@pytest.fixture
def service(backend, mainnet) -> WalletService:
    return WalletService(backend=backend, network=mainnet, codec=StubCodec(mainnet))


@pytest.fixture
def blob(service: WalletService, sample_mnemonic: str) -> str:
    _, encrypted = service.create_wallet(sample_mnemonic, PASSWORD)
    return encrypted


@pytest.fixture
def destination(mainnet) -> str:
    return scriptpubkey_to_address(b"\x00\x14" + b"\x42" * 20, mainnet)


class TestVaultFlows:
    def test_create_and_unlock(self, service, sample_mnemonic, own_address):
        record, blob = service.create_wallet(sample_mnemonic, PASSWORD)
        assert record.address == own_address
        assert service.unlock(blob, PASSWORD) == record

    def test_unlock_wrong_password(self, service, blob):
        with pytest.raises(WrongPassword):
            service.unlock(blob, "nope")


class TestPrepareSend:
    def test_fee_converges_with_input_count(self, service, make_utxo, destination):
        utxos = [make_utxo("0.6", 1), make_utxo("0.3", 2), make_utxo("0.2", 3), make_utxo("5", 4)]
        selection = service.prepare_send(utxos, destination, Decimal("1"), RATE)

        assert len(selection.utxos) == 3
        # 3 inputs, payment + platform fee + change
        assert selection.fee.size == 10 + 3 * 68 + 3 * 31
        assert selection.fee.fee_sat == 3070
        assert selection.platform_fee == Decimal("0.01")
        assert selection.required == Decimal("1.0100307")
        assert selection.total_value == Decimal("1.1")

    def test_single_input(self, service, make_utxo, destination):
        selection = service.prepare_send([make_utxo("5", 1)], destination, "0.5", RATE)
        assert len(selection.utxos) == 1
        assert selection.fee.fee_sat == (10 + 68 + 3 * 31) * 10
        assert selection.platform_fee == Decimal("0.0001")

    def test_without_platform_fee(self, backend, mainnet, make_utxo, destination):
        service = WalletService(backend=backend, network=mainnet, charge_send_platform_fee=False)
        selection = service.prepare_send([make_utxo("5", 1)], destination, "2", RATE)
        assert selection.platform_fee == Decimal(0)
        assert selection.fee.size == 10 + 68 + 2 * 31

    def test_skips_consumed_outputs(self, service, make_utxo, destination):
        utxos = [make_utxo("3", 1, is_usable=False), make_utxo("3", 2, in_mempool=True)]
        utxos.append(make_utxo("3", 3))
        selection = service.prepare_send(utxos, destination, "1", RATE)
        assert [u.txid for u in selection.utxos] == ["03" * 32]

    def test_insufficient(self, service, make_utxo, destination):
        with pytest.raises(InsufficientFunds):
            service.prepare_send([make_utxo("1", 1)], destination, "1", RATE)

    def test_invalid_destination(self, service, make_utxo, testnet):
        foreign = scriptpubkey_to_address(b"\x00\x14" + b"\x42" * 20, testnet)
        with pytest.raises(ValueError, match="Invalid mainnet address"):
            service.prepare_send([make_utxo("5", 1)], foreign, "1", RATE)

    @pytest.mark.parametrize("amount", ["0", "-1"])
    def test_non_positive_amount(self, service, make_utxo, destination, amount):
        with pytest.raises(ValueError, match="must be positive"):
            service.prepare_send([make_utxo("5", 1)], destination, amount, RATE)


class TestPrepareEngrave:
    def test_selection(self, service, make_utxo):
        selection = service.prepare_engrave([make_utxo("1", 1)], "a" * 20, RATE)
        assert len(selection.outputs) == 3
        assert selection.platform_fee == Decimal("0.05")
        # 3 payload outputs + platform fee + change
        assert selection.fee.size == 10 + 68 + 5 * 31

    def test_no_codec(self, backend, mainnet, make_utxo):
        service = WalletService(backend=backend, network=mainnet)
        with pytest.raises(WalletError, match="no payload codec"):
            service.prepare_engrave([make_utxo("1", 1)], "hello", RATE)

    def test_empty_text(self, service, make_utxo):
        with pytest.raises(ValueError, match="Nothing to engrave"):
            service.prepare_engrave([make_utxo("1", 1)], "   ", RATE)


class TestSend:
    @pytest.mark.asyncio
    async def test_send_broadcasts_and_records_pending(
        self, service, backend, blob, make_utxo, destination, mainnet, own_address
    ):
        utxos = [make_utxo("2", 1)]
        selection = service.prepare_send(utxos, destination, "1", RATE)

        result = await service.send(blob, PASSWORD, selection)

        assert result.success
        backend.broadcast_transaction.assert_awaited_once_with(result.rawtx)
        tx = deserialize_transaction(bytes.fromhex(result.rawtx))
        assert [o.script for o in tx.outputs] == [
            address_to_scriptpubkey(destination, mainnet),
            address_to_scriptpubkey(mainnet.platform_fee_address, mainnet),
            address_to_scriptpubkey(own_address, mainnet),
        ]
        assert result.fee == selection.fee.fee_coin
        assert result.total_input == result.total_output + result.change + result.fee

        entry = service.ledger.get(result.txid)
        assert entry.status == PendingStatus.PENDING
        assert entry.consumed == utxos
        assert entry.rawtx == result.rawtx

    @pytest.mark.asyncio
    async def test_pending_spend_hides_utxo(self, service, backend, blob, make_utxo, destination):
        utxos = [make_utxo("2", 1), make_utxo("1", 2)]
        backend.get_utxos.return_value = utxos
        selection = service.prepare_send(utxos, destination, "1", RATE)
        await service.send(blob, PASSWORD, selection)

        refreshed = await service.get_utxos("ignored")
        assert [u.is_usable for u in refreshed] == [False, True]
        assert await service.get_balance("ignored") == Decimal("1")
        # The backend snapshot itself is untouched
        assert all(u.is_usable for u in utxos)

    @pytest.mark.asyncio
    async def test_wrong_password_does_not_broadcast(
        self, service, backend, blob, make_utxo, destination
    ):
        selection = service.prepare_send([make_utxo("2", 1)], destination, "1", RATE)
        with pytest.raises(WrongPassword):
            await service.send(blob, "wrong", selection)
        backend.broadcast_transaction.assert_not_awaited()
        assert len(service.ledger) == 0

    @pytest.mark.asyncio
    async def test_signing_failure(
        self, service, backend, blob, make_utxo, destination, monkeypatch
    ):
        failed = SignedTransactionResult(
            success=False,
            rawtx="",
            txid="",
            total_input=Decimal(0),
            total_output=Decimal(0),
            change=Decimal(0),
            fee=Decimal(0),
            fee_rate=Decimal(0),
            platform_fee=Decimal(0),
            error="boom",
        )
        monkeypatch.setattr(
            "scashwallet.wallet.service.sign_transaction", lambda *args, **kwargs: failed
        )
        selection = service.prepare_send([make_utxo("2", 1)], destination, "1", RATE)

        with pytest.raises(SigningFailure, match="boom"):
            await service.send(blob, PASSWORD, selection)
        backend.broadcast_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_record_key_mismatch(
        self, service, backend, sample_mnemonic, make_utxo, destination, mainnet
    ):
        record, _ = service.create_wallet(sample_mnemonic, PASSWORD)
        tampered = record.model_copy(
            update={"private_key": private_key_to_wif(b"\x07" * 32, mainnet)}
        )
        selection = service.prepare_send([make_utxo("2", 1)], destination, "1", RATE)

        with pytest.raises(WalletError, match="private key"):
            await service.send(encrypt_wallet(tampered, PASSWORD), PASSWORD, selection)
        backend.broadcast_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_rejected(self, service, backend, blob, make_utxo, destination):
        backend.broadcast_transaction.side_effect = BroadcastRejected(-26, "dust")
        selection = service.prepare_send([make_utxo("2", 1)], destination, "1", RATE)

        with pytest.raises(BroadcastRejected) as exc_info:
            await service.send(blob, PASSWORD, selection)
        assert exc_info.value.message == "dust"
        assert len(service.ledger) == 0

    @pytest.mark.asyncio
    async def test_engrave_uses_combined_fee(self, service, blob, make_utxo, mainnet):
        selection = service.prepare_engrave([make_utxo("1", 1)], "engraved text", RATE)
        result = await service.engrave(blob, PASSWORD, selection)

        assert result.success
        assert result.fee == selection.fee.fee_coin
        assert result.platform_fee == Decimal("0.05")
        assert result.fee_rate == selection.fee.fee_coin + Decimal("0.05")

        tx = deserialize_transaction(bytes.fromhex(result.rawtx))
        assert len(tx.outputs) == len(selection.outputs) + 2
        assert tx.outputs[len(selection.outputs)].script == address_to_scriptpubkey(
            mainnet.platform_fee_address, mainnet
        )
        assert tx.outputs[len(selection.outputs)].value == 5_000_000


class TestUpdatePending:
    @pytest.mark.asyncio
    async def test_flips_confirmed(self, service, backend, blob, make_utxo, destination):
        first = await service.send(
            blob, PASSWORD, service.prepare_send([make_utxo("2", 1)], destination, "1", RATE)
        )
        second = await service.send(
            blob, PASSWORD, service.prepare_send([make_utxo("2", 2)], destination, "1", RATE)
        )

        async def lookup(txid: str) -> TxStatus | None:
            if txid == first.txid:
                return TxStatus(txid=txid, confirmations=1, blockhash="00" * 32)
            return TxStatus(txid=txid, confirmations=0)

        backend.get_transaction.side_effect = lookup

        assert await service.update_pending() == [first.txid]
        assert service.ledger.get(first.txid).status == PendingStatus.CONFIRMED
        assert [e.id for e in service.ledger.pending()] == [second.txid]

    @pytest.mark.asyncio
    async def test_unknown_transaction_stays_pending(
        self, service, backend, blob, make_utxo, destination
    ):
        result = await service.send(
            blob, PASSWORD, service.prepare_send([make_utxo("2", 1)], destination, "1", RATE)
        )
        backend.get_transaction.return_value = None
        assert await service.update_pending() == []
        assert service.ledger.get(result.txid).status == PendingStatus.PENDING


class TestHistory:
    @pytest.mark.asyncio
    async def test_requires_explorer(self, service):
        with pytest.raises(WalletError, match="No explorer"):
            await service.get_history("scash1qme")

    @pytest.mark.asyncio
    async def test_messages(self, backend, mainnet, own_address):
        codec = StubCodec(mainnet)
        payload_address = codec.create_outputs("x")[0].address
        explorer = AsyncMock(spec=ExplorerClient)
        explorer.get_address_transactions.return_value = [
            HistoryRecord.model_validate(
                {
                    "txid": "aa" * 32,
                    "senders": [{"address": own_address, "amount": 100}],
                    "rawTransaction": {
                        "vout": [{"scriptPubKey": {"address": payload_address}}],
                    },
                }
            ),
            HistoryRecord.model_validate({"txid": "bb" * 32}),
        ]
        service = WalletService(backend=backend, network=mainnet, explorer=explorer, codec=codec)

        messages = await service.get_messages(own_address)
        assert len(messages) == 1
        record, message = messages[0]
        assert record.txid == "aa" * 32
        assert message.content == "decoded message"
        assert message.is_from_self
        assert message.is_pure_message

    @pytest.mark.asyncio
    async def test_close(self, backend, mainnet):
        explorer = AsyncMock(spec=ExplorerClient)
        service = WalletService(backend=backend, network=mainnet, explorer=explorer)
        await service.close()
        backend.close.assert_awaited_once()
        explorer.close.assert_awaited_once()
