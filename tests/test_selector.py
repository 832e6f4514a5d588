"""Tests for UTXO selection."""

from decimal import Decimal

import pytest

from fakes import BTC_TESTNET_ADDRESS_ONE
from hotwallet.chain.base import UnspentOutput
from hotwallet.errors import InsufficientBalance, InvalidAmount
from hotwallet.transactions.selector import select_utxos, spendable_utxos


def make_utxos(*values, confirmed=True):
    return [
        UnspentOutput(
            txid=f"{i:064x}",
            output_index=0,
            value_satoshis=value,
            owner_address=BTC_TESTNET_ADDRESS_ONE,
            confirmed=confirmed,
        )
        for i, value in enumerate(values, start=1)
    ]


class TestSelectUtxos:
    """Tests for accumulation-order coin selection."""

    def test_two_inputs_with_change(self):
        """50000 + 30000 sat covering 60000 at 1 sat/byte."""
        selection = select_utxos(make_utxos(50000, 30000), 60000, 1)

        assert [u.value_satoshis for u in selection.inputs] == [50000, 30000]
        assert selection.fee == 436
        assert selection.change == 19564
        assert selection.total_in == selection.spend + selection.fee + selection.change

    def test_stops_at_first_sufficient_prefix(self):
        selection = select_utxos(make_utxos(100000, 30000, 20000), 60000, 1)

        assert len(selection.inputs) == 1
        assert selection.fee == 257
        assert selection.change == 100000 - 60000 - 257

    def test_keeps_indexer_order(self):
        utxos = make_utxos(1000, 90000)
        selection = select_utxos(utxos, 50000, 1)

        assert list(selection.inputs) == utxos

    def test_dust_change_added_to_fee(self):
        # 10000 - 9300 - 257 = 443 sat of change, below dust
        selection = select_utxos(make_utxos(10000), 9300, 1)

        assert selection.change == 0
        assert selection.fee == 700
        assert not selection.has_change
        assert selection.total_in == selection.spend + selection.fee

    def test_change_at_dust_threshold_kept(self):
        # 10000 - 9197 - 257 = 546
        selection = select_utxos(make_utxos(10000), 9197, 1)

        assert selection.change == 546
        assert selection.fee == 257

    def test_exact_cover_has_no_change(self):
        selection = select_utxos(make_utxos(10257), 10000, 1)

        assert selection.change == 0
        assert selection.fee == 257

    def test_conservation_across_rates(self):
        utxos = make_utxos(12000, 7000, 45000, 3000)
        for rate in ("1", "2.5", "10", "33"):
            selection = select_utxos(utxos, 30000, rate)
            assert selection.total_in == selection.spend + selection.fee + selection.change
            assert selection.change == 0 or selection.change >= 546
            assert selection.fee_rate == Decimal(rate)

    def test_insufficient_balance_reports_amounts(self):
        with pytest.raises(InsufficientBalance) as exc_info:
            select_utxos(make_utxos(1000), 5000, 1)

        error = exc_info.value
        assert error.available == 1000
        assert error.required == 5000 + 257
        assert error.code == "insufficient_balance"
        assert error.to_dict()["unit"] == "satoshi"

    def test_insufficient_when_fee_tips_over(self):
        # Enough for the spend, not for spend plus fee
        with pytest.raises(InsufficientBalance) as exc_info:
            select_utxos(make_utxos(30000, 30000), 60000, 1)

        assert exc_info.value.available == 60000
        assert exc_info.value.required == 60436

    def test_no_utxos(self):
        with pytest.raises(InsufficientBalance) as exc_info:
            select_utxos([], 1000, 1)

        assert exc_info.value.available == 0

    @pytest.mark.parametrize("spend", [0, -1])
    def test_non_positive_spend(self, spend):
        with pytest.raises(InvalidAmount):
            select_utxos(make_utxos(10000), spend, 1)

    def test_unconfirmed_excluded_when_disallowed(self):
        utxos = make_utxos(100000, confirmed=False) + make_utxos(50000)
        selection = select_utxos(utxos, 10000, 1, spend_unconfirmed=False)

        assert [u.value_satoshis for u in selection.inputs] == [50000]

    def test_spendable_utxos_filter(self):
        utxos = make_utxos(1, confirmed=False) + make_utxos(2)

        assert len(spendable_utxos(utxos)) == 2
        assert [u.value_satoshis for u in spendable_utxos(utxos, False)] == [2]
