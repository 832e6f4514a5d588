"""Base interfaces for outbound transfers.

Send flow:
1. Caller requests a send (chain, network, key, destination, amount)
2. Service validates the amount, the key and the destination (validated)
3. Adapter gathers fee data and inputs/nonce and assembles the tx (built)
4. Adapter signs and verifies the tx (signed)
5. Adapter broadcasts the tx through the same chain connection (broadcast)
6. Caller tracks confirmation (confirmed | failed)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Union

from hotwallet.chain.base import RecentTransaction, UnspentOutput
from hotwallet.chains import ChainKind
from hotwallet.config import Network
from hotwallet.fees import FeeQuote
from hotwallet.hdwallet.base import KeyDeriver
from hotwallet.transactions.base import SignedTransaction, TxState

logger = logging.getLogger(__name__)


@dataclass
class SendRequest:
    """Request to move value out of an address."""

    from_address: str
    to_address: str
    amount: Decimal  # whole units, already validated positive
    private_key: str = field(repr=False)
    fee_hint: Optional[FeeQuote] = None


@dataclass
class PreparedTransaction:
    """Signed transaction plus the connection it must be broadcast through."""

    signed: SignedTransaction
    amount: int  # base units
    fee_quote: FeeQuote
    session: Any = field(default=None, repr=False)


@dataclass
class TxResult:
    """Result of a send operation.

    ``state`` is ``broadcast`` on success and ``failed`` otherwise; for
    failures ``failed_stage`` is the last state the send reached.
    """

    success: bool
    state: TxState
    chain: Optional[ChainKind] = None
    network: Optional[Network] = None
    txid: Optional[str] = None
    error: Optional[str] = None
    details: str = ""
    fee: Optional[int] = None
    from_address: Optional[str] = None
    to_address: Optional[str] = None
    amount: Optional[str] = None
    failed_stage: Optional[TxState] = None
    error_data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "chain": self.chain.value if self.chain else None,
            "network": self.network.value if self.network else None,
            "state": self.state.value,
            "from": self.from_address,
            "to": self.to_address,
            "amount": self.amount,
        }
        if self.success:
            data["txid"] = self.txid
            data["fee"] = self.fee
        else:
            data["error"] = self.error
            data["details"] = self.details
            if self.failed_stage:
                data["failed_stage"] = self.failed_stage.value
            data.update(self.error_data)
        return data


class ChainAdapter(ABC):
    """Capability interface every chain variant implements.

    Each adapter is bound to one network and built from an explicit config.
    """

    chain: ChainKind

    def __init__(self, network: Network, deriver: KeyDeriver):
        self.network = network
        self.deriver = deriver

    @property
    def decimals(self) -> int:
        """Decimals of the asset moved by ``build_and_sign``."""
        return self.chain.decimals

    def validate_address(self, address: str) -> bool:
        """Validate destination address format for this chain and network."""
        return self.deriver.validate_address(address, self.network)

    def derive_sender(self, private_key: str) -> str:
        """Address controlled by ``private_key`` on this network.

        Raises:
            InvalidKeyFormat: If the key cannot be parsed
        """
        return self.deriver.derive_address(private_key, self.network)

    def same_address(self, a: str, b: str) -> bool:
        return a == b

    @abstractmethod
    async def get_utxos_or_balance(self, address: str) -> Union[list[UnspentOutput], int]:
        """UTXOs (UTXO chains) or spendable balance in base units (account chains)."""
        pass

    @abstractmethod
    async def build_and_sign(self, request: SendRequest) -> PreparedTransaction:
        """Build and sign a transaction for ``request``.

        Raises:
            InvalidAmount, InsufficientBalance, NetworkUnavailable, SigningFailed
        """
        pass

    @abstractmethod
    async def broadcast(self, prepared: PreparedTransaction) -> str:
        """Broadcast a prepared transaction. Never retried.

        Returns:
            Transaction ID

        Raises:
            BroadcastRejected, NetworkUnavailable
        """
        pass

    @abstractmethod
    async def get_history(self, address: str, limit: Optional[int] = None) -> list[RecentTransaction]:
        """Most recent transactions of an address."""
        pass

    @abstractmethod
    async def get_transaction_status(self, txid: str) -> TxState:
        """Check transaction confirmation status."""
        pass
