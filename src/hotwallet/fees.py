"""Fee estimation.

UTXO chains use a linear size model; account chains pay
``gas_limit * gas_price``. Fees are always rounded up so a transaction is
never one satoshi short.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from hotwallet.config import Network

# Size model (bytes)
INPUT_SIZE = 180
OUTPUT_SIZE = 34
TX_OVERHEAD = 10

# Gas limits
GAS_LIMIT_NATIVE = 21000
GAS_LIMIT_TOKEN = 100000

GWEI = 10**9


class FeeSource(str, Enum):
    """Where a fee quote came from."""

    LIVE = "live"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class FeeQuote:
    """Fee rate for one network at one point in time.

    UTXO quotes set ``fee_rate_per_byte`` (sat/byte). Account quotes set
    ``gas_price`` and, for EIP-1559 sends, ``max_fee_per_gas`` and
    ``max_priority_fee_per_gas`` (all in wei).
    """

    network: Network
    source: FeeSource
    fee_rate_per_byte: Optional[Decimal] = None
    gas_price: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    estimated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_degraded(self) -> bool:
        return self.source is FeeSource.FALLBACK

    def to_dict(self) -> dict:
        data = {
            "network": self.network.value,
            "source": self.source.value,
            "estimated_at": self.estimated_at.isoformat(),
        }
        if self.fee_rate_per_byte is not None:
            data["fee_rate_per_byte"] = str(self.fee_rate_per_byte)
        for name in ("gas_price", "max_fee_per_gas", "max_priority_fee_per_gas"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


def estimate_tx_size(input_count: int, output_count: int) -> int:
    """Estimated size in bytes of a transaction with the given shape."""
    if input_count < 0 or output_count < 0:
        raise ValueError("Input and output counts must be non-negative")
    return input_count * INPUT_SIZE + output_count * OUTPUT_SIZE + TX_OVERHEAD - input_count


def estimate_fee(input_count: int, output_count: int, fee_rate: "Decimal | int | str") -> int:
    """Fee in satoshis: ``ceil(size * fee_rate)``.

    Monotonic in both counts for any non-negative rate.
    """
    rate = Decimal(str(fee_rate))
    if rate < 0:
        raise ValueError("Fee rate must be non-negative")

    size = estimate_tx_size(input_count, output_count)
    return int(math.ceil(Decimal(size) * rate))


def gas_fee(gas_limit: int, gas_price: int) -> int:
    """Maximum fee in wei for an account-chain transaction."""
    return gas_limit * gas_price


def gwei_to_wei(gwei: "Decimal | int | str") -> int:
    return int(Decimal(str(gwei)) * GWEI)
