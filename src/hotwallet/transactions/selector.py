"""UTXO selection.

UTXOs are accumulated in the order the indexer returned them. The fee
depends on how many inputs are chosen, so it is recomputed after every
addition and selection stops as soon as the inputs cover spend plus fee.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from hotwallet.chain.base import UnspentOutput
from hotwallet.errors import InsufficientBalance, InvalidAmount
from hotwallet.fees import estimate_fee

logger = logging.getLogger(__name__)

DUST_THRESHOLD = 546

# Recipient plus change
DEFAULT_OUTPUT_COUNT = 2


@dataclass(frozen=True)
class CoinSelection:
    """Inputs chosen for a spend.

    ``total_in == spend + fee + change`` always holds, and ``change`` is
    either 0 or at least the dust threshold.
    """

    inputs: tuple[UnspentOutput, ...]
    spend: int
    fee: int
    change: int
    fee_rate: Decimal

    @property
    def total_in(self) -> int:
        return sum(utxo.value_satoshis for utxo in self.inputs)

    @property
    def has_change(self) -> bool:
        return self.change > 0


def spendable_utxos(utxos: Sequence[UnspentOutput], spend_unconfirmed: bool = True) -> list[UnspentOutput]:
    """Filter out unconfirmed UTXOs unless they may be spent."""
    if spend_unconfirmed:
        return list(utxos)
    return [utxo for utxo in utxos if utxo.confirmed]


def select_utxos(
    utxos: Sequence[UnspentOutput],
    spend: int,
    fee_rate: "Decimal | int | str",
    *,
    output_count: int = DEFAULT_OUTPUT_COUNT,
    dust_threshold: int = DUST_THRESHOLD,
    spend_unconfirmed: bool = True,
) -> CoinSelection:
    """Select UTXOs covering ``spend`` satoshis plus fee.

    Args:
        utxos: Candidate UTXOs in indexer order
        spend: Amount to send in satoshis
        fee_rate: Fee rate in sat/byte
        output_count: Outputs assumed when estimating the fee
        dust_threshold: Change below this is added to the fee
        spend_unconfirmed: Whether unconfirmed UTXOs may be used

    Raises:
        InvalidAmount: If ``spend`` is not positive
        InsufficientBalance: If all candidates together cannot cover spend plus fee
    """
    if spend <= 0:
        raise InvalidAmount(f"Spend must be positive, got {spend}")

    rate = Decimal(str(fee_rate))
    candidates = spendable_utxos(utxos, spend_unconfirmed)

    selected: list[UnspentOutput] = []
    total = 0
    fee = 0

    for utxo in candidates:
        selected.append(utxo)
        total += utxo.value_satoshis
        fee = estimate_fee(len(selected), output_count, rate)
        if total >= spend + fee:
            break
    else:
        available = sum(utxo.value_satoshis for utxo in candidates)
        required = spend + estimate_fee(max(len(candidates), 1), output_count, rate)
        raise InsufficientBalance(available=available, required=required, unit="satoshi")

    change = total - spend - fee
    if 0 < change < dust_threshold:
        logger.debug(f"Change {change} sat below dust threshold, adding to fee")
        fee += change
        change = 0

    return CoinSelection(
        inputs=tuple(selected),
        spend=spend,
        fee=fee,
        change=change,
        fee_rate=rate,
    )
