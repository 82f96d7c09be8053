"""
Tests for greedy coin selection.
"""

from __future__ import annotations

import copy
from decimal import Decimal

import pytest

from scashwallet.errors import InsufficientFunds
from scashwallet.wallet.coin_selection import is_spendable, select_utxos, spendable_balance


class TestSelectUtxos:
    def test_single_utxo_covers(self, make_utxo):
        utxos = [make_utxo("5", 1), make_utxo("3", 2)]
        selected = select_utxos(utxos, Decimal("4"))
        assert selected == [utxos[0]]

    def test_prefix_in_given_order(self, make_utxo):
        """Selection takes a prefix, not the largest outputs."""
        utxos = [make_utxo("1", 1), make_utxo("1", 2), make_utxo("10", 3)]
        selected = select_utxos(utxos, Decimal("1.5"))
        assert [u.txid for u in selected] == [utxos[0].txid, utxos[1].txid]

    def test_exact_amount_stops(self, make_utxo):
        utxos = [make_utxo("2", 1), make_utxo("2", 2)]
        assert len(select_utxos(utxos, Decimal("2"))) == 1

    def test_skips_mempool_and_unusable(self, make_utxo):
        utxos = [
            make_utxo("10", 1, in_mempool=True),
            make_utxo("10", 2, is_usable=False),
            make_utxo("3", 3),
        ]
        selected = select_utxos(utxos, Decimal("2"))
        assert selected == [utxos[2]]

    def test_insufficient(self, make_utxo):
        utxos = [make_utxo("1", 1), make_utxo("2", 2), make_utxo("100", 3, in_mempool=True)]
        with pytest.raises(InsufficientFunds) as exc_info:
            select_utxos(utxos, Decimal("5"))
        assert exc_info.value.required == Decimal("5")
        assert exc_info.value.available == Decimal("3")

    def test_empty(self):
        with pytest.raises(InsufficientFunds):
            select_utxos([], Decimal("0.0001"))

    def test_input_not_mutated(self, make_utxo):
        utxos = [make_utxo("1", 1), make_utxo("2", 2, is_usable=False), make_utxo("3", 3)]
        snapshot = copy.deepcopy(utxos)
        select_utxos(utxos, Decimal("3"))
        assert utxos == snapshot

    def test_deterministic(self, make_utxo):
        utxos = [make_utxo(str(i), i) for i in range(1, 6)]
        assert select_utxos(utxos, Decimal("7")) == select_utxos(utxos, Decimal("7"))

    def test_total_covers_required(self, make_utxo):
        utxos = [make_utxo("0.3", i) for i in range(1, 11)]
        required = Decimal("1.95")
        selected = select_utxos(utxos, required)
        total = sum(u.amount for u in selected)
        assert total >= required
        assert total - selected[-1].amount < required


class TestSpendableBalance:
    def test_excludes_unspendable(self, make_utxo):
        utxos = [
            make_utxo("1.5", 1),
            make_utxo("2", 2, in_mempool=True),
            make_utxo("4", 3, is_usable=False),
        ]
        assert spendable_balance(utxos) == Decimal("1.5")

    def test_empty(self):
        assert spendable_balance([]) == Decimal(0)

    def test_is_spendable(self, make_utxo):
        assert is_spendable(make_utxo("1"))
        assert not is_spendable(make_utxo("1", in_mempool=True))
        assert not is_spendable(make_utxo("1", is_usable=False))
