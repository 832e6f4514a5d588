"""Wallet transfer service.

Entry point of the engine: sends value, reports wallet info, generates
wallets and checks transaction status on any configured chain and network.

Sends are serialized per (chain family, network, address) so two sends
from one address never pick the same UTXOs or nonce. Every send failure is
returned as a ``TxResult`` with a stable error code, never raised.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from cryptography.fernet import InvalidToken

from hotwallet.chain.base import RecentTransaction, TokenBalance
from hotwallet.chains import ChainKind
from hotwallet.config import Network
from hotwallet.crypto import Encryptor, decrypt_if_encrypted
from hotwallet.errors import (
    InvalidAddress,
    InvalidKeyFormat,
    NetworkUnavailable,
    UnsupportedChain,
    WalletError,
)
from hotwallet.fees import FeeQuote
from hotwallet.hdwallet import get_key_deriver
from hotwallet.services.balances import WalletBalances
from hotwallet.transactions.base import SignedTransaction, TxState
from hotwallet.utils.amounts import parse_amount
from hotwallet.utils.locks import AddressLock, LockTimeoutError
from hotwallet.withdrawal.base import ChainAdapter, SendRequest, TxResult
from hotwallet.withdrawal.eth import EthereumAdapter
from hotwallet.withdrawal.factory import NetworkEngine

logger = logging.getLogger(__name__)

REDACTED = "***"


@dataclass
class WalletInfo:
    """Balance and recent activity of one address."""

    balance: WalletBalances
    recent_transactions: list[RecentTransaction] = field(default_factory=list)
    token_balances: list[TokenBalance] = field(default_factory=list)
    transaction_count: Optional[int] = None

    def to_dict(self) -> dict:
        data = {
            "balance": self.balance.to_dict(),
            "recent_transactions": [tx.to_dict() for tx in self.recent_transactions],
            "token_balances": [token.to_dict() for token in self.token_balances],
        }
        if self.transaction_count is not None:
            data["transaction_count"] = self.transaction_count
        return data


@dataclass
class GeneratedWallet:
    """Public fields of a new wallet, plus ciphertexts of its secrets."""

    chain: ChainKind
    network: Network
    address: str
    public_key: str
    derivation_path: str
    encrypted_private_key: Optional[str] = field(default=None, repr=False)
    encrypted_mnemonic: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> dict:
        data = {
            "chain": self.chain.value,
            "network": self.network.value,
            "address": self.address,
            "public_key": self.public_key,
            "derivation_path": self.derivation_path,
        }
        if self.encrypted_private_key:
            data["encrypted_private_key"] = self.encrypted_private_key
            data["encrypted_mnemonic"] = self.encrypted_mnemonic
        return data


def _try_parse(enum_cls, value):
    try:
        return enum_cls.parse(value)
    except ValueError:
        return None


def _describe(result: TxResult) -> str:
    chain = result.chain.value if result.chain else "unknown"
    network = result.network.value if result.network else "unknown"
    return f"{chain}/{network}"


def _scrub(text: str, secret: Optional[str]) -> str:
    """Remove a secret (and its 0x-less form) from free text."""
    if not isinstance(secret, str) or not secret.strip():
        return text
    secret = secret.strip()
    # Longest form first so "0x" never survives
    for variant in (secret, secret.removeprefix("0x")):
        if variant:
            text = text.replace(variant, REDACTED)
    return text


class WalletTransferService:
    """Orchestrates key checks, locking, building, signing and broadcast.

    Usage:
        service = create_transfer_service()
        result = await service.send_value("BTC", "testnet", wif, "tb1q...", "0.0006")
        if not result.success:
            print(result.error, result.details)
    """

    def __init__(
        self,
        engines: dict[Network, NetworkEngine],
        locks: Optional[AddressLock] = None,
        encryptor: Optional[Encryptor] = None,
    ):
        self.engines = engines
        self.locks = locks or AddressLock()
        self.encryptor = encryptor

    def get_engine(self, network: "Network | str") -> NetworkEngine:
        try:
            network = Network.parse(network)
        except ValueError as e:
            raise UnsupportedChain(str(e))

        engine = self.engines.get(network)
        if engine is None:
            raise UnsupportedChain(f"Network {network.value} is not configured")
        return engine

    def get_adapter(self, chain: "ChainKind | str", network: "Network | str") -> ChainAdapter:
        try:
            kind = ChainKind.parse(chain)
        except ValueError as e:
            raise UnsupportedChain(str(e))
        return self.get_engine(network).adapter(kind)

    # ======================
    # Send
    # ======================

    async def send_value(
        self,
        chain: "ChainKind | str",
        network: "Network | str",
        sender_private_key: str,
        to_address: str,
        amount: str,
        sender_address: Optional[str] = None,
        fee_hint: Optional[FeeQuote] = None,
    ) -> TxResult:
        """Send ``amount`` (whole units, decimal string) to ``to_address``.

        The private key may be plaintext or a ciphertext produced by the
        configured encryptor. If ``sender_address`` is given, the key must
        control it.
        """
        kind = _try_parse(ChainKind, chain)
        net = _try_parse(Network, network)
        stage: Optional[TxState] = None
        from_address = sender_address
        private_key = sender_private_key

        result = TxResult(
            success=False,
            chain=kind,
            network=net,
            state=TxState.FAILED,
            to_address=to_address,
            amount=str(amount),
        )

        try:
            adapter = self.get_adapter(chain, network)
            kind, net = adapter.chain, adapter.network
            result.chain, result.network = kind, net

            value = parse_amount(amount)
            private_key = self._decrypt_key(sender_private_key)
            from_address = self._check_sender(adapter, private_key, sender_address)
            result.from_address = from_address

            if not adapter.validate_address(to_address):
                raise InvalidAddress(f"Invalid {kind.value} {net.value} address: {to_address}")
            stage = TxState.VALIDATED

            lock_key = (kind.key_family.value, net.value, from_address)
            async with self.locks.hold(lock_key, operation=f"send {kind.value}"):
                request = SendRequest(
                    from_address=from_address,
                    to_address=to_address,
                    amount=value,
                    private_key=private_key,
                    fee_hint=fee_hint,
                )
                prepared = await adapter.build_and_sign(request)
                stage = TxState.SIGNED

                txid = await adapter.broadcast(prepared)
                stage = TxState.BROADCAST

            return self._success(result, txid, prepared.signed)

        except LockTimeoutError as e:
            return self._failure(result, "send_in_progress", str(e), stage, private_key)

        except WalletError as e:
            if stage is TxState.VALIDATED and e.code == "signing_failed":
                stage = TxState.BUILT
            extra = {k: v for k, v in e.to_dict().items() if k not in ("error", "details")}
            return self._failure(result, e.code, e.message, stage, private_key, extra)

        except Exception as e:
            # No traceback: the message may carry the key
            logger.error(
                f"Unexpected error during {_describe(result)} send: "
                f"{type(e).__name__}: {_scrub(str(e), private_key)}"
            )
            return self._failure(result, "internal_error", str(e), stage, private_key)

    def _decrypt_key(self, private_key: str) -> str:
        if not private_key or not isinstance(private_key, str):
            raise InvalidKeyFormat("Private key must be a non-empty string")
        try:
            return decrypt_if_encrypted(private_key.strip(), self.encryptor)
        except InvalidToken:
            raise InvalidKeyFormat("Encrypted private key could not be decrypted")

    def _check_sender(
        self, adapter: ChainAdapter, private_key: str, sender_address: Optional[str]
    ) -> str:
        """Derive the sending address and check it matches the claimed sender."""
        derived = adapter.derive_sender(private_key)
        if sender_address and not adapter.same_address(derived, sender_address.strip()):
            raise InvalidKeyFormat(
                f"Private key does not control sender address {sender_address}"
            )
        return derived

    def _success(self, result: TxResult, txid: str, signed: SignedTransaction) -> TxResult:
        result.success = True
        result.txid = txid
        result.state = TxState.BROADCAST
        result.fee = signed.fee
        logger.info(
            f"{_describe(result)} send broadcast: "
            f"{result.amount} from {result.from_address} to {result.to_address}, txid {txid}"
        )
        return result

    def _failure(
        self,
        result: TxResult,
        code: str,
        details: str,
        stage: Optional[TxState],
        private_key: Optional[str],
        extra: Optional[dict] = None,
    ) -> TxResult:
        result.success = False
        result.state = TxState.FAILED
        result.error = code
        result.details = _scrub(details, private_key)
        result.failed_stage = stage
        result.error_data = extra or {}
        logger.warning(
            f"{_describe(result)} send failed "
            f"({code}) after stage {stage.value if stage else 'none'}: {result.details}"
        )
        return result

    # ======================
    # Queries
    # ======================

    async def get_wallet_info(
        self,
        chain: "ChainKind | str",
        address: str,
        network: "Network | str",
    ) -> WalletInfo:
        """Balance, recent transactions and token balances of an address.

        History failures degrade to an empty list.

        Raises:
            InvalidAddress: If the address is not valid for the chain/network
            NetworkUnavailable: If balances cannot be fetched
            UnsupportedChain: If the chain or network is not configured
        """
        adapter = self.get_adapter(chain, network)
        if not adapter.validate_address(address):
            raise InvalidAddress(
                f"Invalid {adapter.chain.value} {adapter.network.value} address: {address}"
            )

        engine = self.get_engine(adapter.network)

        if isinstance(adapter, EthereumAdapter):
            client = await adapter.connect()
            balances, count, history = await asyncio.gather(
                engine.balances.get_balances(adapter.chain, address, client),
                self._optional(adapter.get_transaction_count(address, client), "transaction count"),
                self._history(adapter, address),
            )
        else:
            balances, history = await asyncio.gather(
                engine.balances.get_balances(adapter.chain, address),
                self._history(adapter, address),
            )
            count = None

        return WalletInfo(
            balance=balances,
            recent_transactions=history,
            token_balances=balances.token_balances,
            transaction_count=count,
        )

    async def _history(self, adapter: ChainAdapter, address: str) -> list[RecentTransaction]:
        try:
            return await adapter.get_history(address)
        except NetworkUnavailable as e:
            logger.warning(f"Failed to get history for {address}: {e}")
            return []

    async def _optional(self, coro, what: str):
        try:
            return await coro
        except NetworkUnavailable as e:
            logger.warning(f"Failed to get {what}: {e}")
            return None

    async def get_transaction_status(
        self,
        chain: "ChainKind | str",
        network: "Network | str",
        txid: str,
    ) -> TxState:
        """Check the confirmation status of a broadcast transaction."""
        return await self.get_adapter(chain, network).get_transaction_status(txid)

    # ======================
    # Wallet generation
    # ======================

    def generate_wallet(self, chain: "ChainKind | str", network: "Network | str") -> GeneratedWallet:
        """Generate a fresh wallet.

        Only public fields are returned in clear. The private key and the
        mnemonic are returned as ciphertexts when an encryptor is configured
        and dropped otherwise.
        """
        try:
            kind = ChainKind.parse(chain)
            net = Network.parse(network)
        except ValueError as e:
            raise UnsupportedChain(str(e))

        key = get_key_deriver(kind).generate(net)
        wallet = GeneratedWallet(
            chain=kind,
            network=net,
            address=key.address,
            public_key=key.public_key,
            derivation_path=key.derivation_path,
        )

        if self.encryptor is None:
            logger.warning("No master key configured, generated secrets are not returned")
        else:
            wallet.encrypted_private_key = self.encryptor.encrypt(key.private_key)
            wallet.encrypted_mnemonic = self.encryptor.encrypt(key.mnemonic)

        logger.info(f"Generated {kind.value} {net.value} wallet {key.address}")
        return wallet
