"""Chain adapters: one capability interface over Bitcoin, Ethereum and ERC-20."""

from hotwallet.withdrawal.base import ChainAdapter, PreparedTransaction, SendRequest, TxResult
from hotwallet.withdrawal.factory import NetworkEngine, build_engine, create_transfer_service

__all__ = [
    "ChainAdapter",
    "NetworkEngine",
    "PreparedTransaction",
    "SendRequest",
    "TxResult",
    "build_engine",
    "create_transfer_service",
]
