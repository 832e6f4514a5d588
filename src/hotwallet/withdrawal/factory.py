"""Factory for per-network engines.

An engine bundles every adapter and the balance aggregator for one network.
Everything is built from an explicit ``EngineConfig``; nothing below this
module reads settings.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from hotwallet.chain.blockstream import BlockstreamClient
from hotwallet.chain.evm import EtherscanClient, RpcPool
from hotwallet.chains import ChainKind
from hotwallet.config import EngineConfig, Network, Settings, get_settings
from hotwallet.crypto import get_encryptor
from hotwallet.errors import UnsupportedChain
from hotwallet.services.balances import BalanceAggregator
from hotwallet.withdrawal.base import ChainAdapter
from hotwallet.withdrawal.btc import BitcoinAdapter
from hotwallet.withdrawal.eth import ERC20Adapter, EthereumAdapter

logger = logging.getLogger(__name__)


@dataclass
class NetworkEngine:
    """Adapters and balance aggregation for one network."""

    config: EngineConfig
    adapters: dict[ChainKind, ChainAdapter]
    balances: BalanceAggregator

    @property
    def network(self) -> Network:
        return self.config.network

    def adapter(self, chain: ChainKind) -> ChainAdapter:
        adapter = self.adapters.get(chain)
        if adapter is None:
            raise UnsupportedChain(f"{chain.value} is not configured on {self.network.value}")
        return adapter


def build_engine(
    config: EngineConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> NetworkEngine:
    """Build the adapters for one network.

    Args:
        config: Network configuration
        transport: Optional httpx transport shared by every client (tests)
    """
    bitcoin_client = BlockstreamClient(config.bitcoin, transport=transport)
    pool = RpcPool(config.ethereum, transport=transport)
    etherscan = EtherscanClient(config.ethereum, transport=transport)

    adapters: dict[ChainKind, ChainAdapter] = {
        ChainKind.BITCOIN: BitcoinAdapter(config.bitcoin, bitcoin_client),
        ChainKind.ETHEREUM: EthereumAdapter(config.ethereum, pool, etherscan),
    }
    if config.ethereum.tokens:
        # First tracked token is the transferable ERC-20
        adapters[ChainKind.ERC20] = ERC20Adapter(
            config.ethereum, config.ethereum.tokens[0], pool, etherscan
        )

    return NetworkEngine(
        config=config,
        adapters=adapters,
        balances=BalanceAggregator(bitcoin_client, pool, config.ethereum),
    )


def create_transfer_service(
    settings: Optional[Settings] = None,
    networks: Optional[list[Network]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
):
    """Create a WalletTransferService for the configured networks.

    Args:
        settings: Settings to use (defaults to ``get_settings()``)
        networks: Networks to serve (defaults to both)
        transport: Optional httpx transport shared by every client (tests)
    """
    from hotwallet.services.transfer import WalletTransferService
    from hotwallet.utils.locks import AddressLock

    settings = settings or get_settings()
    networks = networks or [Network.TESTNET, Network.MAINNET]

    engines = {}
    for network in networks:
        engines[network] = build_engine(settings.engine_config(network), transport=transport)
        logger.debug(f"Built {network.value} engine")

    return WalletTransferService(
        engines=engines,
        locks=AddressLock(timeout=settings.send_lock_timeout),
        encryptor=get_encryptor(settings.master_key),
    )
