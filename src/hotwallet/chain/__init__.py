"""Chain clients: Esplora for Bitcoin, JSON-RPC and Etherscan for Ethereum."""

from hotwallet.chain.base import RecentTransaction, TokenBalance, UnspentOutput
from hotwallet.chain.blockstream import BlockstreamClient
from hotwallet.chain.evm import EtherscanClient, EvmRpcClient, JsonRpcError, RpcPool

__all__ = [
    "BlockstreamClient",
    "EtherscanClient",
    "EvmRpcClient",
    "JsonRpcError",
    "RecentTransaction",
    "RpcPool",
    "TokenBalance",
    "UnspentOutput",
]
