"""Application configuration using pydantic-settings.

``Settings`` is read from the environment (and ``.env``). The engine itself
never reads settings: ``Settings.engine_config(network)`` produces an
immutable ``EngineConfig`` that is passed into clients and adapters.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Network(str, Enum):
    """Network a key, address or transaction belongs to."""

    TESTNET = "testnet"
    MAINNET = "mainnet"

    @property
    def is_testnet(self) -> bool:
        return self is Network.TESTNET

    @classmethod
    def parse(cls, value: "str | bool | Network") -> "Network":
        """Accept ``testnet``/``mainnet``, ``sepolia`` or a testnet flag."""
        if isinstance(value, Network):
            return value
        if isinstance(value, bool):
            return cls.TESTNET if value else cls.MAINNET
        normalized = str(value).strip().lower()
        if normalized in ("testnet", "test", "sepolia"):
            return cls.TESTNET
        if normalized in ("mainnet", "main"):
            return cls.MAINNET
        raise ValueError(f"Unknown network: {value}")


# USDT ERC-20 contract addresses
USDT_CONTRACT_MAINNET = "0xdAC17F958D2ee523a2206206994597C13D831ec7"
USDT_CONTRACT_SEPOLIA = "0x7169D38820dfd117C3FA1f22a697dBA58d90BA06"

ETH_CHAIN_ID_MAINNET = 1
ETH_CHAIN_ID_SEPOLIA = 11155111


@dataclass(frozen=True)
class TokenConfig:
    """A tracked ERC-20 token."""

    symbol: str
    contract: str
    default_decimals: int = 6


@dataclass(frozen=True)
class BitcoinConfig:
    """Bitcoin settings for one network."""

    network: Network
    api_url: str
    fee_api_url: str
    fallback_fee_rate: Decimal
    live_fees: bool = True
    query_timeout: float = 5.0
    broadcast_timeout: float = 10.0
    dust_threshold: int = 546
    spend_unconfirmed: bool = True
    recent_tx_limit: int = 5


@dataclass(frozen=True)
class EthereumConfig:
    """Ethereum settings for one network."""

    network: Network
    chain_id: int
    rpc_urls: tuple[str, ...]
    etherscan_url: str
    etherscan_api_key: str = ""
    tokens: tuple[TokenConfig, ...] = ()
    fallback_gas_price_gwei: Decimal = Decimal("50")
    fallback_priority_fee_gwei: Decimal = Decimal("1.5")
    native_gas_limit: int = 21000
    token_gas_limit: int = 100000
    query_timeout: float = 5.0
    broadcast_timeout: float = 10.0
    recent_tx_limit: int = 10

    def token(self, symbol: str) -> TokenConfig:
        for token in self.tokens:
            if token.symbol.upper() == symbol.upper():
                return token
        raise KeyError(symbol)


@dataclass(frozen=True)
class EngineConfig:
    """Everything the engine needs for one network."""

    network: Network
    bitcoin: BitcoinConfig
    ethereum: EthereumConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug logging")
    default_network: str = Field(default="testnet", description="Network used when none is given")

    # ======================
    # Bitcoin (Esplora API)
    # ======================
    btc_api_mainnet: str = Field(
        default="https://blockstream.info/api", description="Esplora API for mainnet"
    )
    btc_api_testnet: str = Field(
        default="https://blockstream.info/testnet/api", description="Esplora API for testnet"
    )
    btc_fee_api_mainnet: str = Field(
        default="https://mempool.space/api", description="Fee API for mainnet"
    )
    btc_fee_api_testnet: str = Field(
        default="https://mempool.space/testnet/api", description="Fee API for testnet"
    )
    btc_fallback_fee_mainnet: Decimal = Field(
        default=Decimal("5"), description="Fallback fee rate (sat/byte) on mainnet"
    )
    btc_fallback_fee_testnet: Decimal = Field(
        default=Decimal("1"), description="Fixed/fallback fee rate (sat/byte) on testnet"
    )
    btc_live_testnet_fees: bool = Field(
        default=False, description="Query the live fee API on testnet instead of the fixed rate"
    )
    btc_dust_threshold: int = Field(default=546, description="Dust threshold in satoshis")
    btc_spend_unconfirmed: bool = Field(
        default=True, description="Allow unconfirmed UTXOs to be selected as inputs"
    )

    # ======================
    # Ethereum RPC Endpoints
    # ======================
    eth_mainnet_endpoint: Optional[str] = Field(
        default=None, description="Preferred mainnet RPC URL (tried first)"
    )
    eth_sepolia_endpoint: Optional[str] = Field(
        default=None, description="Preferred Sepolia RPC URL (tried first)"
    )
    eth_mainnet_fallbacks: str = Field(
        default="https://eth.llamarpc.com,https://rpc.ankr.com/eth",
        description="Comma-separated mainnet fallback RPC URLs",
    )
    eth_sepolia_fallbacks: str = Field(
        default="https://rpc.sepolia.org,https://ethereum-sepolia-rpc.publicnode.com",
        description="Comma-separated Sepolia fallback RPC URLs",
    )
    etherscan_api_mainnet: str = Field(
        default="https://api.etherscan.io/api", description="Etherscan API for mainnet"
    )
    etherscan_api_sepolia: str = Field(
        default="https://api-sepolia.etherscan.io/api", description="Etherscan API for Sepolia"
    )
    etherscan_api_key: str = Field(default="", description="Etherscan API key")
    eth_fallback_gas_gwei: Decimal = Field(
        default=Decimal("50"), description="Gas price used when fee data is unavailable"
    )
    eth_fallback_priority_gwei: Decimal = Field(
        default=Decimal("1.5"), description="Priority fee used when fee data is unavailable"
    )

    # ======================
    # Tokens
    # ======================
    usdt_contract_mainnet: str = Field(default=USDT_CONTRACT_MAINNET)
    usdt_contract_sepolia: str = Field(default=USDT_CONTRACT_SEPOLIA)
    usdt_default_decimals: int = Field(default=6)

    # ======================
    # Timeouts
    # ======================
    query_timeout: float = Field(default=5.0, description="Chain query timeout (seconds)")
    broadcast_timeout: float = Field(default=10.0, description="Broadcast timeout (seconds)")
    send_lock_timeout: float = Field(
        default=30.0, description="Max wait for the per-address send lock (seconds)"
    )

    # ======================
    # Encryption
    # ======================
    master_key: Optional[str] = Field(
        default=None, description="Fernet key used to encrypt generated private keys"
    )

    def get_rpc_urls(self, network: Network) -> tuple[str, ...]:
        """Ordered RPC endpoint list for a network, preferred endpoint first."""
        if network.is_testnet:
            preferred, fallbacks = self.eth_sepolia_endpoint, self.eth_sepolia_fallbacks
        else:
            preferred, fallbacks = self.eth_mainnet_endpoint, self.eth_mainnet_fallbacks

        urls = [preferred] if preferred else []
        urls.extend(url.strip() for url in fallbacks.split(",") if url.strip())
        # De-duplicate while keeping order
        return tuple(dict.fromkeys(urls))

    def engine_config(self, network: "Network | str") -> EngineConfig:
        """Build the explicit engine configuration for one network."""
        network = Network.parse(network)
        testnet = network.is_testnet

        bitcoin = BitcoinConfig(
            network=network,
            api_url=self.btc_api_testnet if testnet else self.btc_api_mainnet,
            fee_api_url=self.btc_fee_api_testnet if testnet else self.btc_fee_api_mainnet,
            fallback_fee_rate=(
                self.btc_fallback_fee_testnet if testnet else self.btc_fallback_fee_mainnet
            ),
            live_fees=self.btc_live_testnet_fees if testnet else True,
            query_timeout=self.query_timeout,
            broadcast_timeout=self.broadcast_timeout,
            dust_threshold=self.btc_dust_threshold,
            spend_unconfirmed=self.btc_spend_unconfirmed,
        )

        usdt = TokenConfig(
            symbol="USDT",
            contract=self.usdt_contract_sepolia if testnet else self.usdt_contract_mainnet,
            default_decimals=self.usdt_default_decimals,
        )
        ethereum = EthereumConfig(
            network=network,
            chain_id=ETH_CHAIN_ID_SEPOLIA if testnet else ETH_CHAIN_ID_MAINNET,
            rpc_urls=self.get_rpc_urls(network),
            etherscan_url=self.etherscan_api_sepolia if testnet else self.etherscan_api_mainnet,
            etherscan_api_key=self.etherscan_api_key,
            tokens=(usdt,),
            fallback_gas_price_gwei=self.eth_fallback_gas_gwei,
            fallback_priority_fee_gwei=self.eth_fallback_priority_gwei,
            query_timeout=self.query_timeout,
            broadcast_timeout=self.broadcast_timeout,
        )

        return EngineConfig(
            network=network,
            bitcoin=bitcoin,
            ethereum=ethereum,
        )

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "default_network": self.default_network,
            "bitcoin": {
                "mainnet": self.btc_api_mainnet,
                "testnet": self.btc_api_testnet,
                "spend_unconfirmed": self.btc_spend_unconfirmed,
            },
            "ethereum": {
                "mainnet": list(self.get_rpc_urls(Network.MAINNET)),
                "sepolia": list(self.get_rpc_urls(Network.TESTNET)),
                "etherscan_api_key": "***" if self.etherscan_api_key else "(not set)",
            },
            "master_key": "***" if self.master_key else "(not set)",
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
