"""BTC transfer adapter.

Uses:
- BlockstreamClient for UTXOs, fee rates and broadcast
- select_utxos for coin selection
- transactions.btc (bitcoinlib) for building and signing P2PKH spends
"""

import logging
from typing import Optional

from hotwallet.chain.base import RecentTransaction, UnspentOutput
from hotwallet.chain.blockstream import BlockstreamClient
from hotwallet.chains import ChainKind
from hotwallet.config import BitcoinConfig
from hotwallet.errors import InvalidAmount
from hotwallet.fees import FeeQuote
from hotwallet.hdwallet.btc import BTCKeyDeriver
from hotwallet.transactions.base import TxState
from hotwallet.transactions.btc import build_transaction, load_key, sign_transaction
from hotwallet.transactions.selector import select_utxos
from hotwallet.utils.amounts import to_base_units
from hotwallet.withdrawal.base import ChainAdapter, PreparedTransaction, SendRequest

logger = logging.getLogger(__name__)


class BitcoinAdapter(ChainAdapter):
    """Bitcoin transfers from P2PKH addresses."""

    chain = ChainKind.BITCOIN

    def __init__(self, config: BitcoinConfig, client: Optional[BlockstreamClient] = None):
        super().__init__(config.network, BTCKeyDeriver())
        self.config = config
        self.client = client or BlockstreamClient(config)

    async def get_utxos_or_balance(self, address: str) -> list[UnspentOutput]:
        return await self.client.get_utxos(address)

    def check_fee_hint(self, hint: Optional[FeeQuote]) -> None:
        if hint is not None and hint.fee_rate_per_byte is None:
            raise InvalidAmount("Fee hint has no sat/byte rate; gas prices do not apply to bitcoin")

    async def build_and_sign(self, request: SendRequest) -> PreparedTransaction:
        spend = to_base_units(request.amount, self.decimals)
        secret, compressed = self.deriver.decode_private_key(request.private_key, self.network)
        self.check_fee_hint(request.fee_hint)

        quote = request.fee_hint or await self.client.get_fee_estimate()
        utxos = await self.client.get_utxos(request.from_address)

        selection = select_utxos(
            utxos,
            spend,
            quote.fee_rate_per_byte,
            dust_threshold=self.config.dust_threshold,
            spend_unconfirmed=self.config.spend_unconfirmed,
        )
        logger.info(
            f"Selected {len(selection.inputs)} of {len(utxos)} UTXOs for {spend} sat: "
            f"fee {selection.fee} sat at {selection.fee_rate} sat/byte, change {selection.change} sat"
        )

        key = load_key(secret, self.network, compressed)
        unsigned = build_transaction(
            selection,
            to_address=request.to_address,
            change_address=request.from_address,
            key=key,
            network=self.network,
        )
        signed = sign_transaction(unsigned, key)

        return PreparedTransaction(signed=signed, amount=spend, fee_quote=quote)

    async def broadcast(self, prepared: PreparedTransaction) -> str:
        txid = await self.client.broadcast(prepared.signed.raw_hex)
        if txid != prepared.signed.txid:
            logger.warning(f"Node returned txid {txid}, expected {prepared.signed.txid}")
        return txid

    async def get_history(self, address: str, limit: Optional[int] = None) -> list[RecentTransaction]:
        return await self.client.get_transactions(address, limit)

    async def get_transaction_status(self, txid: str) -> TxState:
        return await self.client.get_transaction_status(txid)
