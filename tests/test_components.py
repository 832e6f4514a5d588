"""Component tests for locks, configuration, encryption and chain parsing."""

import asyncio
from decimal import Decimal

import pytest
from cryptography.fernet import InvalidToken

from fakes import RPC_BACKUP, RPC_PRIMARY, make_settings
from hotwallet.chains import ChainKind
from hotwallet.config import ETH_CHAIN_ID_MAINNET, ETH_CHAIN_ID_SEPOLIA, Network
from hotwallet.crypto import (
    KeyEncryptor,
    decrypt_if_encrypted,
    derive_key_from_password,
    generate_master_key,
    get_encryptor,
)
from hotwallet.utils.locks import AddressLock, LockTimeoutError


class TestAddressLock:
    """Tests for the per-address send lock."""

    @pytest.mark.asyncio
    async def test_same_key_same_lock(self):
        locks = AddressLock()

        assert locks.get_lock(("bitcoin", "testnet", "a")) is locks.get_lock(("bitcoin", "testnet", "a"))
        assert locks.get_lock(("bitcoin", "testnet", "a")) is not locks.get_lock(("bitcoin", "mainnet", "a"))

    @pytest.mark.asyncio
    async def test_hold_releases(self):
        locks = AddressLock()
        key = ("ethereum", "testnet", "0xabc")

        async with locks.hold(key, operation="test"):
            assert locks.is_locked(key)

        assert not locks.is_locked(key)

    @pytest.mark.asyncio
    async def test_releases_on_error(self):
        locks = AddressLock()
        key = ("ethereum", "testnet", "0xabc")

        with pytest.raises(RuntimeError):
            async with locks.hold(key):
                raise RuntimeError("boom")

        assert not locks.is_locked(key)

    @pytest.mark.asyncio
    async def test_prevents_concurrent_access(self):
        """Two holders of one key run one after the other."""
        locks = AddressLock(timeout=10.0)
        key = ("bitcoin", "testnet", "m...")
        results = []

        async def task(name, delay):
            async with locks.hold(key, operation=f"task_{name}"):
                results.append(f"{name}_start")
                await asyncio.sleep(delay)
                results.append(f"{name}_end")

        await asyncio.gather(task("A", 0.1), task("B", 0.1))

        assert results in [
            ["A_start", "A_end", "B_start", "B_end"],
            ["B_start", "B_end", "A_start", "A_end"],
        ]

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self):
        locks = AddressLock(timeout=1.0)
        results = []

        async def task(key):
            async with locks.hold(key):
                results.append(f"{key}_start")
                await asyncio.sleep(0.05)
                results.append(f"{key}_end")

        await asyncio.gather(task("a"), task("b"))

        assert set(results[:2]) == {"a_start", "b_start"}

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        locks = AddressLock(timeout=5.0)
        key = "busy"

        async def hold_lock():
            async with locks.hold(key):
                await asyncio.sleep(0.5)

        hold_task = asyncio.create_task(hold_lock())
        await asyncio.sleep(0.05)

        with pytest.raises(LockTimeoutError):
            async with locks.hold(key, timeout=0.1):
                pass

        await hold_task

    @pytest.mark.asyncio
    async def test_clear_keeps_held_locks(self):
        locks = AddressLock()

        async with locks.hold("held"):
            locks.get_lock("idle")
            locks.clear()
            assert locks.is_locked("held")
            assert "idle" not in locks._locks

    @pytest.mark.asyncio
    async def test_released_locks_are_forgotten(self):
        locks = AddressLock()

        for index in range(50):
            async with locks.hold(("bitcoin", "testnet", f"addr{index}")):
                pass

        assert locks._locks == {}
        assert locks._users == {}

    @pytest.mark.asyncio
    async def test_waiter_keeps_lock_alive(self):
        locks = AddressLock(timeout=5.0)
        key = "shared"
        order = []

        async def worker(name: str, delay: float):
            async with locks.hold(key, operation=name):
                order.append(name)
                await asyncio.sleep(delay)

        first = asyncio.create_task(worker("first", 0.1))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(worker("second", 0))
        await asyncio.sleep(0.01)

        assert locks._users[key] == 2
        await asyncio.gather(first, second)

        assert order == ["first", "second"]
        assert key not in locks._locks
        assert key not in locks._users

    @pytest.mark.asyncio
    async def test_timed_out_waiter_is_forgotten(self):
        locks = AddressLock(timeout=5.0)
        key = "busy"

        async with locks.hold(key):
            with pytest.raises(LockTimeoutError):
                async with locks.hold(key, timeout=0.05):
                    pass
            assert locks._users[key] == 1

        assert key not in locks._locks
        assert key not in locks._users


class TestSettings:
    """Tests for settings and engine configuration."""

    def test_rpc_urls_preferred_first_and_deduplicated(self):
        settings = make_settings(eth_sepolia_fallbacks=f"{RPC_BACKUP}, {RPC_PRIMARY},")

        assert settings.get_rpc_urls(Network.TESTNET) == (RPC_PRIMARY, RPC_BACKUP)

    def test_testnet_engine_config(self):
        config = make_settings().engine_config("testnet")

        assert config.network is Network.TESTNET
        assert config.ethereum.chain_id == ETH_CHAIN_ID_SEPOLIA
        assert config.bitcoin.live_fees is False
        assert config.bitcoin.fallback_fee_rate == Decimal("1")
        assert config.ethereum.tokens[0].symbol == "USDT"
        assert config.ethereum.token("usdt").default_decimals == 6

    def test_mainnet_engine_config(self):
        config = make_settings().engine_config(Network.MAINNET)

        assert config.ethereum.chain_id == ETH_CHAIN_ID_MAINNET
        assert config.bitcoin.live_fees is True
        assert config.bitcoin.api_url == "https://blockstream.info/api"

    def test_live_testnet_fees_flag(self):
        config = make_settings(btc_live_testnet_fees=True).engine_config("testnet")

        assert config.bitcoin.live_fees is True

    def test_safe_dict_hides_secrets(self):
        settings = make_settings(master_key="secret-master", etherscan_api_key="secret-key")
        safe = str(settings.get_safe_dict())

        assert "secret-master" not in safe
        assert "secret-key" not in safe

    @pytest.mark.parametrize(
        "value,network",
        [
            ("testnet", Network.TESTNET),
            ("Sepolia", Network.TESTNET),
            (True, Network.TESTNET),
            ("mainnet", Network.MAINNET),
            (False, Network.MAINNET),
        ],
    )
    def test_network_parse(self, value, network):
        assert Network.parse(value) is network

    def test_network_parse_unknown(self):
        with pytest.raises(ValueError):
            Network.parse("regtest")


class TestChainKind:
    """Tests for chain variant parsing."""

    def test_aliases(self):
        assert ChainKind.parse("btc") is ChainKind.BITCOIN
        assert ChainKind.parse("USDT") is ChainKind.ERC20
        assert ChainKind.parse(ChainKind.ETHEREUM) is ChainKind.ETHEREUM

    def test_token_shares_ethereum_keys(self):
        assert ChainKind.ERC20.key_family is ChainKind.ETHEREUM
        assert ChainKind.BITCOIN.is_utxo
        assert not ChainKind.ERC20.is_utxo

    def test_unknown(self):
        with pytest.raises(ValueError):
            ChainKind.parse("DOGE")


class TestEncryption:
    """Tests for at-rest key encryption."""

    def test_round_trip(self):
        encryptor = KeyEncryptor(generate_master_key())

        ciphertext = encryptor.encrypt("L1aW4aubDFB7yfras2S1mN3bqg9nwySY8nkoLmJebSLD5BWv3ENZ")

        assert ciphertext.startswith("gAAAAA")
        assert encryptor.decrypt(ciphertext) == "L1aW4aubDFB7yfras2S1mN3bqg9nwySY8nkoLmJebSLD5BWv3ENZ"

    def test_rotate_key(self):
        old = KeyEncryptor(generate_master_key())
        new_key = generate_master_key()

        rotated = old.rotate_key(new_key, old.encrypt("secret"))

        assert KeyEncryptor(new_key).decrypt(rotated) == "secret"

    def test_password_derivation_is_deterministic(self):
        key, salt = derive_key_from_password("hunter2")

        assert derive_key_from_password("hunter2", salt) == (key, salt)
        assert KeyEncryptor(key).decrypt(KeyEncryptor(key).encrypt("x")) == "x"

    def test_plaintext_passes_through(self):
        assert decrypt_if_encrypted("0xabc", None) == "0xabc"

    def test_ciphertext_without_encryptor(self):
        ciphertext = KeyEncryptor(generate_master_key()).encrypt("secret")

        with pytest.raises(InvalidToken):
            decrypt_if_encrypted(ciphertext, None)

    def test_get_encryptor(self):
        assert get_encryptor(None) is None
        assert get_encryptor("") is None
        assert isinstance(get_encryptor(generate_master_key()), KeyEncryptor)
