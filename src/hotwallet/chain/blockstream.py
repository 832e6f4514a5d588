"""Bitcoin chain client for the Esplora (Blockstream) HTTP API.

Uses:
- Blockstream for UTXOs, history, transaction status and broadcast
- Mempool.space for fee estimation
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from hotwallet.chain.base import RecentTransaction, UnspentOutput
from hotwallet.config import BitcoinConfig
from hotwallet.errors import BroadcastRejected, InvalidAddress, NetworkUnavailable
from hotwallet.fees import FeeQuote, FeeSource
from hotwallet.transactions.base import TxState

logger = logging.getLogger(__name__)


class BlockstreamClient:
    """Esplora API client bound to one network.

    Every request opens a short-lived ``httpx.AsyncClient``; pass
    ``transport`` to route requests elsewhere (e.g. ``httpx.MockTransport``).
    """

    def __init__(
        self,
        config: BitcoinConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.network = config.network
        self.api_url = config.api_url.rstrip("/")
        self.fee_api_url = config.fee_api_url.rstrip("/")
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def _get(self, url: str) -> httpx.Response:
        try:
            async with self._client(self.config.query_timeout) as client:
                return await client.get(url)
        except httpx.HTTPError as e:
            raise NetworkUnavailable(f"Request to {url} failed: {e}")

    async def get_utxos(self, address: str) -> list[UnspentOutput]:
        """Get UTXOs for an address, in indexer order.

        Raises:
            InvalidAddress: If the indexer rejects the address
            NetworkUnavailable: On transport errors or unexpected responses
        """
        response = await self._get(f"{self.api_url}/address/{address}/utxo")

        if response.status_code == 400:
            raise InvalidAddress(f"Indexer rejected address {address}: {response.text.strip()}")
        if response.status_code != 200:
            raise NetworkUnavailable(
                f"UTXO lookup failed: {response.status_code} - {response.text.strip()}"
            )

        utxos = []
        for item in response.json():
            status = item.get("status") or {}
            utxos.append(
                UnspentOutput(
                    txid=item["txid"],
                    output_index=int(item["vout"]),
                    value_satoshis=int(item["value"]),
                    owner_address=address,
                    confirmed=bool(status.get("confirmed", False)),
                    block_height=status.get("block_height"),
                )
            )

        logger.debug(f"Found {len(utxos)} UTXOs for {address} on {self.network.value}")
        return utxos

    async def get_fee_estimate(self) -> FeeQuote:
        """Get the current fee rate in sat/byte.

        Testnet uses the configured fixed rate unless live fees are enabled.
        Any failure of the live call falls back to the configured rate.
        """
        if not self.config.live_fees:
            return self._fallback_quote()

        url = f"{self.fee_api_url}/v1/fees/recommended"
        try:
            async with self._client(self.config.query_timeout) as client:
                response = await client.get(url)
            response.raise_for_status()
            rate = Decimal(str(response.json()["hourFee"]))
            if rate <= 0:
                raise ValueError(f"non-positive fee rate {rate}")
        except (httpx.HTTPError, KeyError, ValueError, TypeError, InvalidOperation) as e:
            logger.warning(
                f"FeeEstimationDegraded: {self.network.value} fee API failed ({e}), "
                f"using {self.config.fallback_fee_rate} sat/byte"
            )
            return self._fallback_quote()

        return FeeQuote(network=self.network, source=FeeSource.LIVE, fee_rate_per_byte=rate)

    def _fallback_quote(self) -> FeeQuote:
        return FeeQuote(
            network=self.network,
            source=FeeSource.FALLBACK,
            fee_rate_per_byte=self.config.fallback_fee_rate,
        )

    async def broadcast(self, raw_tx_hex: str) -> str:
        """Broadcast raw transaction to network.

        Returns:
            Transaction ID

        Raises:
            BroadcastRejected: If the node refuses the transaction
            NetworkUnavailable: If the node cannot be reached
        """
        try:
            async with self._client(self.config.broadcast_timeout) as client:
                response = await client.post(
                    f"{self.api_url}/tx",
                    content=raw_tx_hex,
                    headers={"Content-Type": "text/plain"},
                )
        except httpx.HTTPError as e:
            raise NetworkUnavailable(f"Broadcast failed: {e}")

        if response.status_code != 200:
            logger.error(f"Broadcast rejected: {response.status_code} - {response.text}")
            raise BroadcastRejected(response.text.strip() or f"HTTP {response.status_code}")

        txid = response.text.strip()
        logger.info(f"BTC transaction broadcast on {self.network.value}: {txid}")
        return txid

    async def get_transactions(self, address: str, limit: Optional[int] = None) -> list[RecentTransaction]:
        """Get the most recent transactions touching an address."""
        limit = limit or self.config.recent_tx_limit
        response = await self._get(f"{self.api_url}/address/{address}/txs")

        if response.status_code != 200:
            raise NetworkUnavailable(
                f"History lookup failed: {response.status_code} - {response.text.strip()}"
            )

        history = []
        for item in response.json()[:limit]:
            status = item.get("status") or {}
            history.append(
                RecentTransaction(
                    txid=item["txid"],
                    confirmed=bool(status.get("confirmed", False)),
                    timestamp=status.get("block_time"),
                    fee=item.get("fee"),
                )
            )
        return history

    async def get_transaction_status(self, txid: str) -> TxState:
        """Check BTC transaction confirmation status.

        A transaction unknown to the indexer is reported as failed.
        """
        response = await self._get(f"{self.api_url}/tx/{txid}")

        if response.status_code == 404:
            return TxState.FAILED
        if response.status_code != 200:
            raise NetworkUnavailable(
                f"Status lookup failed: {response.status_code} - {response.text.strip()}"
            )

        confirmed = (response.json().get("status") or {}).get("confirmed", False)
        return TxState.CONFIRMED if confirmed else TxState.BROADCAST
