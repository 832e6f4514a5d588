"""Transaction lifecycle types shared by every chain."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TxState(str, Enum):
    """Lifecycle of an outbound transaction.

    Transitions only move forward:
    validated -> built -> signed -> broadcast -> confirmed | failed
    """

    VALIDATED = "validated"
    BUILT = "built"
    SIGNED = "signed"
    BROADCAST = "broadcast"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_final(self) -> bool:
        return self in (TxState.CONFIRMED, TxState.FAILED)


@dataclass(frozen=True)
class SignedTransaction:
    """A fully signed, serialized transaction ready for broadcast.

    ``fee`` is in the chain's base unit (satoshi or wei). For EIP-1559
    transactions it is the maximum the sender can be charged.
    """

    raw_hex: str
    txid: str
    fee: int
    nonce: Optional[int] = None
