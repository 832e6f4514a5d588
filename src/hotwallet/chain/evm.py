"""Ethereum chain client over raw JSON-RPC.

``RpcPool`` holds the ordered endpoint list for one network and hands out
the first endpoint that answers ``eth_blockNumber``. The chosen client is
then used for a whole operation, so reads and the broadcast of one send
all go to the same node.

``EtherscanClient`` provides address history, which JSON-RPC does not.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from hotwallet.chain.base import RecentTransaction, TokenBalance
from hotwallet.config import EthereumConfig
from hotwallet.errors import BroadcastRejected, NetworkUnavailable
from hotwallet.fees import FeeQuote, FeeSource, gwei_to_wei
from hotwallet.transactions.base import TxState
from hotwallet.transactions.eth import encode_balance_of, encode_decimals

logger = logging.getLogger(__name__)


class JsonRpcError(NetworkUnavailable):
    """The node answered with a JSON-RPC ``error`` object."""

    def __init__(self, method: str, error: Any):
        if isinstance(error, dict):
            self.rpc_code = error.get("code")
            message = error.get("message", str(error))
        else:
            self.rpc_code = None
            message = str(error)
        self.rpc_message = message
        super().__init__(f"{method}: {message}")


def _to_int(value: Optional[str]) -> int:
    if value in (None, "0x", ""):
        return 0
    return int(value, 16)


class EvmRpcClient:
    """JSON-RPC client bound to one endpoint."""

    def __init__(
        self,
        rpc_url: str,
        config: EthereumConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.rpc_url = rpc_url
        self.config = config
        self.network = config.network
        self._transport = transport

    async def _call(self, method: str, params: list, timeout: Optional[float] = None) -> Any:
        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": 1}
        try:
            async with httpx.AsyncClient(
                timeout=timeout or self.config.query_timeout, transport=self._transport
            ) as client:
                response = await client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            raise NetworkUnavailable(f"{method} failed on {self.rpc_url}: {e}")

        if response.status_code != 200:
            raise NetworkUnavailable(
                f"{method} failed on {self.rpc_url}: HTTP {response.status_code}"
            )

        try:
            data = response.json()
        except ValueError:
            raise NetworkUnavailable(f"{method} returned invalid JSON from {self.rpc_url}")

        if data.get("error") is not None:
            raise JsonRpcError(method, data["error"])
        return data.get("result")

    async def block_number(self) -> int:
        return _to_int(await self._call("eth_blockNumber", []))

    async def get_native_balance(self, address: str) -> int:
        """Balance in wei."""
        return _to_int(await self._call("eth_getBalance", [address, "latest"]))

    async def call(self, to: str, data: str) -> str:
        return await self._call("eth_call", [{"to": to, "data": data}, "latest"])

    async def get_decimals(self, contract: str, default: int = 6) -> int:
        """Token decimals, or ``default`` if the contract call fails."""
        try:
            result = await self.call(contract, encode_decimals())
            if result in (None, "0x", ""):
                raise ValueError("empty result")
            return _to_int(result)
        except (NetworkUnavailable, ValueError) as e:
            logger.warning(f"Failed to read decimals of {contract}, using {default}: {e}")
            return default

    async def get_token_balance(
        self,
        contract: str,
        address: str,
        symbol: str = "",
        decimals: Optional[int] = None,
        default_decimals: int = 6,
    ) -> TokenBalance:
        """ERC-20 balance of ``address`` in token base units.

        Raises:
            NetworkUnavailable: If the balance call fails or returns malformed data
        """
        if decimals is None:
            decimals = await self.get_decimals(contract, default_decimals)
        result = await self.call(contract, encode_balance_of(address))
        try:
            raw = _to_int(result)
        except (ValueError, TypeError):
            raise NetworkUnavailable(f"balanceOf on {contract} returned malformed data: {result!r}")
        return TokenBalance(token=symbol, contract=contract, raw_balance=raw, decimals=decimals)

    async def get_gas_price(self) -> int:
        return _to_int(await self._call("eth_gasPrice", []))

    async def get_fee_data(self) -> FeeQuote:
        """Current EIP-1559 fee data.

        ``max_fee_per_gas`` is twice the latest base fee plus the priority
        fee. If the gas price call fails the configured fallbacks are used.
        If only the base fee or priority fee calls fail, the live gas price
        is paid with the fallback priority fee. Either way the send proceeds.
        """
        results = await asyncio.gather(
            self.get_gas_price(),
            self._call("eth_getBlockByNumber", ["latest", False]),
            self._call("eth_maxPriorityFeePerGas", []),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, (NetworkUnavailable, ValueError)):
                raise result

        gas_price, block, priority = results
        if isinstance(gas_price, Exception):
            logger.warning(f"FeeEstimationDegraded: {self.network.value} gas price failed ({gas_price})")
            return self.fallback_fee_quote()

        try:
            for result in (block, priority):
                if isinstance(result, Exception):
                    raise result
            priority_fee = _to_int(priority)
            base_fee = (block or {}).get("baseFeePerGas")
            if base_fee is None:
                # Pre-London chain: pay the legacy gas price
                max_fee = gas_price
                priority_fee = min(priority_fee, gas_price)
            else:
                max_fee = 2 * _to_int(base_fee) + priority_fee
        except (NetworkUnavailable, ValueError, TypeError, AttributeError) as e:
            logger.warning(
                f"FeeEstimationDegraded: {self.network.value} EIP-1559 fee data failed ({e}), "
                f"paying gas price {gas_price} wei"
            )
            fallback_priority = gwei_to_wei(self.config.fallback_priority_fee_gwei)
            return FeeQuote(
                network=self.network,
                source=FeeSource.FALLBACK,
                gas_price=gas_price,
                max_fee_per_gas=gas_price,
                max_priority_fee_per_gas=min(fallback_priority, gas_price),
            )

        return FeeQuote(
            network=self.network,
            source=FeeSource.LIVE,
            gas_price=gas_price,
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=priority_fee,
        )

    async def get_legacy_gas_price(self) -> FeeQuote:
        """Gas price for legacy-priced sends, falling back on failure."""
        try:
            gas_price = await self.get_gas_price()
        except NetworkUnavailable as e:
            logger.warning(f"FeeEstimationDegraded: {self.network.value} gas price failed ({e})")
            return self.fallback_fee_quote()
        return FeeQuote(network=self.network, source=FeeSource.LIVE, gas_price=gas_price)

    def fallback_fee_quote(self) -> FeeQuote:
        gas_price = gwei_to_wei(self.config.fallback_gas_price_gwei)
        return FeeQuote(
            network=self.network,
            source=FeeSource.FALLBACK,
            gas_price=gas_price,
            max_fee_per_gas=gas_price,
            max_priority_fee_per_gas=gwei_to_wei(self.config.fallback_priority_fee_gwei),
        )

    async def get_nonce(self, address: str) -> int:
        """Next nonce, counting pending transactions."""
        return _to_int(await self._call("eth_getTransactionCount", [address, "pending"]))

    async def get_transaction_count(self, address: str) -> int:
        """Number of mined transactions sent from ``address``."""
        return _to_int(await self._call("eth_getTransactionCount", [address, "latest"]))

    async def send_raw_transaction(self, raw_tx_hex: str) -> str:
        """Broadcast raw transaction.

        Raises:
            BroadcastRejected: If the node returns a JSON-RPC error
            NetworkUnavailable: If the node cannot be reached
        """
        if not raw_tx_hex.startswith("0x"):
            raw_tx_hex = "0x" + raw_tx_hex

        try:
            txid = await self._call(
                "eth_sendRawTransaction", [raw_tx_hex], timeout=self.config.broadcast_timeout
            )
        except JsonRpcError as e:
            logger.error(f"Broadcast rejected by {self.rpc_url}: {e.rpc_message}")
            raise BroadcastRejected(e.rpc_message)

        logger.info(f"ETH transaction broadcast on {self.network.value}: {txid}")
        return txid

    async def get_transaction_receipt(self, txid: str) -> Optional[dict]:
        return await self._call("eth_getTransactionReceipt", [txid])

    async def get_transaction_status(self, txid: str) -> TxState:
        """Check ETH transaction status.

        No receipt yet means the transaction is still pending.
        """
        receipt = await self.get_transaction_receipt(txid)
        if receipt is None:
            return TxState.BROADCAST
        if _to_int(receipt.get("status")) == 1:
            return TxState.CONFIRMED
        return TxState.FAILED


class RpcPool:
    """Ordered RPC endpoints for one network with first-alive selection."""

    def __init__(
        self,
        config: EthereumConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not config.rpc_urls:
            raise ValueError(f"No RPC endpoints configured for {config.network.value}")
        self.config = config
        self._transport = transport

    async def connect(self) -> EvmRpcClient:
        """Return a client for the first endpoint that answers.

        Raises:
            NetworkUnavailable: If every endpoint fails
        """
        for url in self.config.rpc_urls:
            client = EvmRpcClient(url, self.config, transport=self._transport)
            try:
                block = await client.block_number()
            except NetworkUnavailable as e:
                logger.warning(f"RPC endpoint {url} unavailable: {e}")
                continue

            logger.debug(f"Connected to {url} at block {block}")
            return client

        raise NetworkUnavailable("Failed to connect to any network endpoint")


class EtherscanClient:
    """Etherscan ``txlist`` history for one network."""

    def __init__(
        self,
        config: EthereumConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.config.etherscan_api_key)

    async def get_transactions(self, address: str, limit: Optional[int] = None) -> list[RecentTransaction]:
        """Most recent transactions of an address, newest first.

        Returns an empty list when no API key is configured.
        """
        if not self.enabled:
            logger.warning("Etherscan API key not set, transaction history unavailable")
            return []

        params = {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": 99999999,
            "page": 1,
            "offset": limit or self.config.recent_tx_limit,
            "sort": "desc",
            "apikey": self.config.etherscan_api_key,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.config.query_timeout, transport=self._transport
            ) as client:
                response = await client.get(self.config.etherscan_url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NetworkUnavailable(f"Etherscan history failed: {e}")

        if str(data.get("status")) != "1":
            if "no transactions" in str(data.get("message", "")).lower():
                return []
            raise NetworkUnavailable(f"Etherscan error: {data.get('message')} {data.get('result')}")

        history = []
        for item in data.get("result", []):
            gas_used = int(item.get("gasUsed") or 0)
            gas_price = int(item.get("gasPrice") or 0)
            history.append(
                RecentTransaction(
                    txid=item["hash"],
                    confirmed=int(item.get("confirmations") or 0) > 0,
                    timestamp=int(item["timeStamp"]) if item.get("timeStamp") else None,
                    fee=gas_used * gas_price,
                    from_address=item.get("from"),
                    to_address=item.get("to"),
                    value=int(item.get("value") or 0),
                )
            )
        return history
