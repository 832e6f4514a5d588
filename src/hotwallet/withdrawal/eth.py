"""ETH and ERC-20 transfer adapters.

Every operation picks one live endpoint from the ``RpcPool`` and uses it
for all of its reads and for the broadcast.
"""

import logging
from typing import Optional

from hotwallet.chain.base import RecentTransaction
from hotwallet.chain.evm import EtherscanClient, EvmRpcClient, RpcPool
from hotwallet.chains import ChainKind
from hotwallet.config import EthereumConfig, TokenConfig
from hotwallet.errors import InsufficientBalance, InvalidAmount
from hotwallet.fees import FeeQuote, gas_fee, gwei_to_wei
from hotwallet.hdwallet.eth import ETHKeyDeriver
from hotwallet.transactions.base import TxState
from hotwallet.transactions.eth import build_native_transfer, build_token_transfer, sign_transaction
from hotwallet.utils.amounts import from_base_units, to_base_units
from hotwallet.withdrawal.base import ChainAdapter, PreparedTransaction, SendRequest

logger = logging.getLogger(__name__)


class EthereumAdapter(ChainAdapter):
    """Ethereum native transfers (EIP-1559)."""

    chain = ChainKind.ETHEREUM

    def __init__(
        self,
        config: EthereumConfig,
        pool: Optional[RpcPool] = None,
        etherscan: Optional[EtherscanClient] = None,
    ):
        super().__init__(config.network, ETHKeyDeriver(self.chain))
        self.config = config
        self.pool = pool or RpcPool(config)
        self.etherscan = etherscan or EtherscanClient(config)

    def same_address(self, a: str, b: str) -> bool:
        return a.lower() == b.lower()

    async def connect(self) -> EvmRpcClient:
        return await self.pool.connect()

    async def get_utxos_or_balance(self, address: str) -> int:
        client = await self.connect()
        return await client.get_native_balance(address)

    def check_fee_hint(self, hint: Optional[FeeQuote]) -> None:
        if hint is not None and hint.gas_price is None and hint.max_fee_per_gas is None:
            raise InvalidAmount(
                f"Fee hint has no gas price; sat/byte rates do not apply to {self.chain.value}"
            )

    async def build_and_sign(self, request: SendRequest) -> PreparedTransaction:
        value = to_base_units(request.amount, self.decimals)
        self.check_fee_hint(request.fee_hint)
        client = await self.connect()

        balance = await client.get_native_balance(request.from_address)
        quote = request.fee_hint or await client.get_fee_data()

        max_fee_per_gas = quote.max_fee_per_gas or quote.gas_price
        priority_fee = quote.max_priority_fee_per_gas
        if priority_fee is None:
            priority_fee = gwei_to_wei(self.config.fallback_priority_fee_gwei)
        priority_fee = min(priority_fee, max_fee_per_gas)

        gas_limit = self.config.native_gas_limit
        required = value + gas_fee(gas_limit, max_fee_per_gas)
        if balance < required:
            raise InsufficientBalance(
                available=balance,
                required=required,
                unit="wei",
                message=(
                    f"Insufficient balance. Available: {from_base_units(balance, 18)} ETH, "
                    f"Required: {from_base_units(required, 18)} ETH (including max gas fee)"
                ),
            )

        # Fetched last so no other read sits between nonce and signature
        nonce = await client.get_nonce(request.from_address)
        tx = build_native_transfer(
            to_address=request.to_address,
            value=value,
            nonce=nonce,
            chain_id=self.config.chain_id,
            max_fee_per_gas=max_fee_per_gas,
            max_priority_fee_per_gas=priority_fee,
            gas=gas_limit,
        )
        signed = sign_transaction(tx, request.private_key)

        return PreparedTransaction(signed=signed, amount=value, fee_quote=quote, session=client)

    async def broadcast(self, prepared: PreparedTransaction) -> str:
        client = prepared.session or await self.connect()
        return await client.send_raw_transaction(prepared.signed.raw_hex)

    async def get_history(self, address: str, limit: Optional[int] = None) -> list[RecentTransaction]:
        return await self.etherscan.get_transactions(address, limit)

    async def get_transaction_count(self, address: str, client: Optional[EvmRpcClient] = None) -> int:
        client = client or await self.connect()
        return await client.get_transaction_count(address)

    async def get_transaction_status(self, txid: str) -> TxState:
        client = await self.connect()
        return await client.get_transaction_status(txid)


class ERC20Adapter(EthereumAdapter):
    """ERC-20 token transfers (legacy gas price, fixed gas limit)."""

    chain = ChainKind.ERC20

    def __init__(
        self,
        config: EthereumConfig,
        token: TokenConfig,
        pool: Optional[RpcPool] = None,
        etherscan: Optional[EtherscanClient] = None,
    ):
        super().__init__(config, pool, etherscan)
        self.token = token

    @property
    def decimals(self) -> int:
        return self.token.default_decimals

    async def get_decimals(self, client: EvmRpcClient) -> int:
        return await client.get_decimals(self.token.contract, self.token.default_decimals)

    async def get_utxos_or_balance(self, address: str) -> int:
        client = await self.connect()
        balance = await client.get_token_balance(
            self.token.contract, address, symbol=self.token.symbol, decimals=self.decimals
        )
        return balance.raw_balance

    async def build_and_sign(self, request: SendRequest) -> PreparedTransaction:
        self.check_fee_hint(request.fee_hint)
        client = await self.connect()
        decimals = await self.get_decimals(client)
        amount = to_base_units(request.amount, decimals)

        # Token balance first, then gas, before anything is built
        token_balance = await client.get_token_balance(
            self.token.contract, request.from_address, symbol=self.token.symbol, decimals=decimals
        )
        if token_balance.raw_balance < amount:
            raise InsufficientBalance(
                available=token_balance.raw_balance,
                required=amount,
                unit=f"{self.token.symbol} base units",
                message=(
                    f"Insufficient {self.token.symbol} balance. "
                    f"Available: {token_balance.human_balance}, "
                    f"Required: {from_base_units(amount, decimals)}"
                ),
            )

        quote = request.fee_hint or await client.get_legacy_gas_price()
        gas_price = quote.gas_price or quote.max_fee_per_gas
        gas_limit = self.config.token_gas_limit
        gas_cost = gas_fee(gas_limit, gas_price)

        eth_balance = await client.get_native_balance(request.from_address)
        if eth_balance < gas_cost:
            raise InsufficientBalance(
                available=eth_balance,
                required=gas_cost,
                unit="wei",
                message=(
                    f"Insufficient ETH for gas. Available: {from_base_units(eth_balance, 18)} ETH, "
                    f"Required: {from_base_units(gas_cost, 18)} ETH"
                ),
            )

        nonce = await client.get_nonce(request.from_address)
        tx = build_token_transfer(
            contract=self.token.contract,
            to_address=request.to_address,
            amount=amount,
            nonce=nonce,
            chain_id=self.config.chain_id,
            gas_price=gas_price,
            gas=gas_limit,
        )
        signed = sign_transaction(tx, request.private_key)

        return PreparedTransaction(signed=signed, amount=amount, fee_quote=quote, session=client)
