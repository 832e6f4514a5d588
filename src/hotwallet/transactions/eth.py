"""Ethereum and ERC-20 transaction building and signing.

Native transfers are EIP-1559 (type 2). Token transfers use a legacy
``gasPrice`` with a fixed gas limit. Both are signed with eth_account and
carry the EIP-155 chain id of the target network.
"""

import logging

from eth_account import Account
from web3 import Web3

from hotwallet.errors import InvalidAddress, SigningFailed
from hotwallet.fees import GAS_LIMIT_NATIVE, GAS_LIMIT_TOKEN
from hotwallet.hdwallet.eth import normalize_private_key
from hotwallet.transactions.base import SignedTransaction

logger = logging.getLogger(__name__)

# ERC-20 function selectors
TRANSFER_SELECTOR = "a9059cbb"  # transfer(address,uint256)
BALANCE_OF_SELECTOR = "70a08231"  # balanceOf(address)
DECIMALS_SELECTOR = "313ce567"  # decimals()


def checksum(address: str) -> str:
    """Return the EIP-55 form of an address.

    Raises:
        InvalidAddress: If the address is not a valid hex address
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidAddress(f"Invalid Ethereum address: {address}")
    return Web3.to_checksum_address(address)


def _pad_address(address: str) -> str:
    return checksum(address)[2:].lower().zfill(64)


def _pad_uint(value: int) -> str:
    if value < 0 or value >= 2**256:
        raise ValueError(f"Value out of uint256 range: {value}")
    return hex(value)[2:].zfill(64)


def encode_transfer(to_address: str, amount: int) -> str:
    """Calldata for ``transfer(to, amount)``."""
    return "0x" + TRANSFER_SELECTOR + _pad_address(to_address) + _pad_uint(amount)


def encode_balance_of(address: str) -> str:
    """Calldata for ``balanceOf(address)``."""
    return "0x" + BALANCE_OF_SELECTOR + _pad_address(address)


def encode_decimals() -> str:
    return "0x" + DECIMALS_SELECTOR


def build_native_transfer(
    *,
    to_address: str,
    value: int,
    nonce: int,
    chain_id: int,
    max_fee_per_gas: int,
    max_priority_fee_per_gas: int,
    gas: int = GAS_LIMIT_NATIVE,
) -> dict:
    """Build an EIP-1559 ETH transfer."""
    return {
        "type": 2,
        "to": checksum(to_address),
        "value": value,
        "gas": gas,
        "maxFeePerGas": max_fee_per_gas,
        "maxPriorityFeePerGas": max_priority_fee_per_gas,
        "nonce": nonce,
        "chainId": chain_id,
    }


def build_token_transfer(
    *,
    contract: str,
    to_address: str,
    amount: int,
    nonce: int,
    chain_id: int,
    gas_price: int,
    gas: int = GAS_LIMIT_TOKEN,
) -> dict:
    """Build a legacy-priced ERC-20 ``transfer`` call."""
    return {
        "to": checksum(contract),
        "value": 0,
        "data": encode_transfer(to_address, amount),
        "gas": gas,
        "gasPrice": gas_price,
        "nonce": nonce,
        "chainId": chain_id,
    }


def max_fee(tx: dict) -> int:
    """Most the sender can be charged for ``tx``, in wei."""
    price = tx.get("maxFeePerGas", tx.get("gasPrice", 0))
    return tx["gas"] * price


def sign_transaction(tx: dict, private_key: str) -> SignedTransaction:
    """Sign a transaction dict.

    Raises:
        InvalidKeyFormat: If the key is not 32 bytes of hex
        SigningFailed: If eth_account cannot sign the transaction
    """
    key = normalize_private_key(private_key)
    try:
        signed = Account.sign_transaction(tx, key)
    except Exception as e:
        # eth_account messages never include the key itself
        raise SigningFailed(f"Failed to sign transaction: {e}")

    # eth_account 0.13 renamed rawTransaction to raw_transaction
    raw = getattr(signed, "raw_transaction", None) or signed.rawTransaction
    txid = Web3.to_hex(signed.hash)
    logger.debug(f"Signed ETH tx {txid} (nonce {tx['nonce']}, chain {tx['chainId']})")

    return SignedTransaction(
        raw_hex=Web3.to_hex(raw),
        txid=txid,
        fee=max_fee(tx),
        nonce=tx["nonce"],
    )
