"""Tests for fee estimation and amount conversion."""

from decimal import Decimal

import pytest

from hotwallet.config import Network
from hotwallet.errors import InvalidAmount
from hotwallet.fees import (
    FeeQuote,
    FeeSource,
    estimate_fee,
    estimate_tx_size,
    gas_fee,
    gwei_to_wei,
)
from hotwallet.utils.amounts import from_base_units, parse_amount, to_base_units


class TestSizeModel:
    """Tests for the linear transaction size model."""

    def test_single_input_two_outputs(self):
        assert estimate_tx_size(1, 2) == 180 + 68 + 10 - 1

    def test_two_inputs_two_outputs(self):
        assert estimate_tx_size(2, 2) == 436

    def test_fee_at_one_sat_per_byte_equals_size(self):
        assert estimate_fee(2, 2, 1) == 436

    def test_fractional_rate_rounds_up(self):
        # 257 bytes * 1.5 = 385.5
        assert estimate_fee(1, 2, Decimal("1.5")) == 386

    def test_string_rate(self):
        assert estimate_fee(1, 1, "2") == 2 * estimate_tx_size(1, 1)

    def test_monotonic_in_inputs_and_outputs(self):
        for rate in (Decimal("0.5"), Decimal("1"), Decimal("12.3")):
            for inputs in range(1, 6):
                for outputs in range(1, 4):
                    fee = estimate_fee(inputs, outputs, rate)
                    assert estimate_fee(inputs + 1, outputs, rate) >= fee
                    assert estimate_fee(inputs, outputs + 1, rate) >= fee

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            estimate_fee(1, 2, -1)

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError):
            estimate_tx_size(-1, 2)


class TestGas:
    """Tests for account-chain fee helpers."""

    def test_gas_fee(self):
        assert gas_fee(21000, gwei_to_wei(50)) == 21000 * 50 * 10**9

    def test_fractional_gwei(self):
        assert gwei_to_wei("1.5") == 1_500_000_000

    def test_fee_quote_degraded_flag(self):
        live = FeeQuote(network=Network.TESTNET, source=FeeSource.LIVE, gas_price=1)
        fallback = FeeQuote(network=Network.TESTNET, source=FeeSource.FALLBACK, gas_price=1)

        assert not live.is_degraded
        assert fallback.is_degraded
        assert fallback.to_dict()["source"] == "fallback"


class TestAmounts:
    """Tests for whole-unit to base-unit conversion."""

    def test_btc_amount(self):
        assert to_base_units(Decimal("0.0006"), 8) == 60000

    def test_usdt_amount(self):
        assert to_base_units(Decimal("150"), 6) == 150_000_000

    def test_eth_amount_is_exact(self):
        assert to_base_units(Decimal("1.000000000000000001"), 18) == 10**18 + 1

    def test_excess_precision_rejected(self):
        with pytest.raises(InvalidAmount):
            to_base_units(Decimal("0.000000001"), 8)

    def test_from_base_units(self):
        assert from_base_units(19564, 8) == Decimal("0.00019564")

    def test_parse_amount_accepts_strings(self):
        assert parse_amount(" 0.5 ") == Decimal("0.5")
        assert parse_amount("1e-3") == Decimal("0.001")

    @pytest.mark.parametrize("value", ["0", "-1", "abc", "", "NaN", "Infinity", True])
    def test_parse_amount_rejects(self, value):
        with pytest.raises(InvalidAmount):
            parse_amount(value)
