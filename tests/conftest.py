"""Pytest configuration and fixtures."""

import os
from decimal import Decimal

import pytest

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"

from fakes import (
    ESPLORA_URL,
    ETHERSCAN_URL,
    FEE_API_URL,
    RPC_BACKUP,
    RPC_PRIMARY,
    USDT_CONTRACT,
    FakeChain,
    make_settings,
)
from hotwallet.config import (
    ETH_CHAIN_ID_SEPOLIA,
    BitcoinConfig,
    EthereumConfig,
    Network,
    TokenConfig,
)
from hotwallet.withdrawal.factory import create_transfer_service


@pytest.fixture
def chain() -> FakeChain:
    """Fresh in-memory chain state."""
    return FakeChain()


@pytest.fixture
def bitcoin_config() -> BitcoinConfig:
    return BitcoinConfig(
        network=Network.TESTNET,
        api_url=ESPLORA_URL,
        fee_api_url=FEE_API_URL,
        fallback_fee_rate=Decimal("1"),
        live_fees=False,
    )


@pytest.fixture
def ethereum_config() -> EthereumConfig:
    return EthereumConfig(
        network=Network.TESTNET,
        chain_id=ETH_CHAIN_ID_SEPOLIA,
        rpc_urls=(RPC_PRIMARY, RPC_BACKUP),
        etherscan_url=ETHERSCAN_URL,
        tokens=(TokenConfig(symbol="USDT", contract=USDT_CONTRACT),),
    )


@pytest.fixture
def service(chain):
    """Transfer service for testnet wired to the fake chain."""
    return create_transfer_service(
        make_settings(), networks=[Network.TESTNET], transport=chain.transport
    )
