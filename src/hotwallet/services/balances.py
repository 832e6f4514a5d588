"""Balance aggregation.

Reconciles native and token balances of one address into a single
reporting shape. Bitcoin keeps confirmed and unconfirmed amounts apart.
Ethereum fetches the native balance and every tracked token concurrently,
and a failed token lookup degrades to a zero entry with an error marker
instead of failing the whole response.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from hotwallet.chain.base import TokenBalance
from hotwallet.chain.blockstream import BlockstreamClient
from hotwallet.chain.evm import EvmRpcClient, RpcPool
from hotwallet.chains import ChainKind
from hotwallet.config import EthereumConfig, Network, TokenConfig
from hotwallet.errors import WalletError
from hotwallet.utils.amounts import from_base_units

logger = logging.getLogger(__name__)


@dataclass
class WalletBalances:
    """Balances of one address, in base units."""

    chain: ChainKind
    network: Network
    address: str
    native: int
    confirmed: Optional[int] = None
    unconfirmed: Optional[int] = None
    token_balances: list[TokenBalance] = field(default_factory=list)

    @property
    def native_human(self) -> Decimal:
        return from_base_units(self.native, self.chain.decimals)

    def to_dict(self) -> dict:
        data = {
            "chain": self.chain.value,
            "network": self.network.value,
            "address": self.address,
            "symbol": self.chain.native_symbol,
            "balance": str(self.native_human),
            "raw_balance": str(self.native),
        }
        if self.confirmed is not None:
            data["confirmed"] = str(self.confirmed)
        if self.unconfirmed is not None:
            data["unconfirmed"] = str(self.unconfirmed)
        data["token_balances"] = [token.to_dict() for token in self.token_balances]
        return data


class BalanceAggregator:
    """Collects balances for one network."""

    def __init__(
        self,
        bitcoin: BlockstreamClient,
        pool: RpcPool,
        ethereum_config: EthereumConfig,
    ):
        self.bitcoin = bitcoin
        self.pool = pool
        self.ethereum_config = ethereum_config
        self.network = ethereum_config.network

    async def get_balances(
        self,
        chain: ChainKind,
        address: str,
        client: Optional[EvmRpcClient] = None,
    ) -> WalletBalances:
        """Balances of ``address`` on the chain family of ``chain``."""
        if chain.key_family is ChainKind.BITCOIN:
            return await self.get_bitcoin_balances(address)
        return await self.get_ethereum_balances(address, client)

    async def get_bitcoin_balances(self, address: str) -> WalletBalances:
        utxos = await self.bitcoin.get_utxos(address)
        confirmed = sum(utxo.value_satoshis for utxo in utxos if utxo.confirmed)
        unconfirmed = sum(utxo.value_satoshis for utxo in utxos if not utxo.confirmed)

        return WalletBalances(
            chain=ChainKind.BITCOIN,
            network=self.bitcoin.network,
            address=address,
            native=confirmed + unconfirmed,
            confirmed=confirmed,
            unconfirmed=unconfirmed,
        )

    async def get_ethereum_balances(
        self, address: str, client: Optional[EvmRpcClient] = None
    ) -> WalletBalances:
        """Native balance plus every tracked token.

        Raises:
            NetworkUnavailable: If no endpoint answers or the native balance fails
        """
        client = client or await self.pool.connect()
        tokens = self.ethereum_config.tokens

        native, *token_balances = await asyncio.gather(
            client.get_native_balance(address),
            *(self._token_balance(client, token, address) for token in tokens),
        )

        return WalletBalances(
            chain=ChainKind.ETHEREUM,
            network=self.network,
            address=address,
            native=native,
            token_balances=list(token_balances),
        )

    async def _token_balance(
        self, client: EvmRpcClient, token: TokenConfig, address: str
    ) -> TokenBalance:
        try:
            return await client.get_token_balance(
                token.contract,
                address,
                symbol=token.symbol,
                default_decimals=token.default_decimals,
            )
        except WalletError as e:
            logger.warning(f"Failed to get {token.symbol} balance for {address}: {e}")
            return TokenBalance(
                token=token.symbol,
                contract=token.contract,
                raw_balance=0,
                decimals=token.default_decimals,
                error=e.code,
            )
