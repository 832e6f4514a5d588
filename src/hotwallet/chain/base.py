"""Data returned by chain clients."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class UnspentOutput:
    """An unspent output owned by an address, as reported by the indexer."""

    txid: str
    output_index: int
    value_satoshis: int
    owner_address: str
    confirmed: bool = True
    block_height: Optional[int] = None


@dataclass(frozen=True)
class TokenBalance:
    """ERC-20 balance of one address.

    A failed lookup is reported as a zero balance with ``error`` set, so
    callers can tell "empty" from "unknown".
    """

    token: str
    contract: str
    raw_balance: int
    decimals: int
    error: Optional[str] = None

    @property
    def human_balance(self) -> Decimal:
        return Decimal(self.raw_balance) / (Decimal(10) ** self.decimals)

    def to_dict(self) -> dict:
        data = {
            "token": self.token,
            "contract": self.contract,
            "raw_balance": str(self.raw_balance),
            "balance": str(self.human_balance),
            "decimals": self.decimals,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class RecentTransaction:
    """Summary of a transaction in an address history."""

    txid: str
    confirmed: bool
    timestamp: Optional[int] = None
    fee: Optional[int] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    value: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            key: value
            for key, value in {
                "txid": self.txid,
                "confirmed": self.confirmed,
                "timestamp": self.timestamp,
                "fee": self.fee,
                "from": self.from_address,
                "to": self.to_address,
                "value": str(self.value) if self.value is not None else None,
            }.items()
            if value is not None
        }
