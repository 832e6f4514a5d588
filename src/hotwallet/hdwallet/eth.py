"""ETH key derivation using BIP44.

Derivation path: m/44'/60'/0'/0/index
Address format: 0x... (checksum encoded)

The same keys hold ETH and ERC-20 tokens. Addresses are network-agnostic;
replay protection across networks comes from the EIP-155 chain id used at
signing time.
"""

import re

from bip_utils import Bip39SeedGenerator, Bip44, Bip44Changes, Bip44Coins, Secp256k1PrivateKey
from eth_account import Account
from eth_utils import is_address

from hotwallet.chains import ChainKind
from hotwallet.config import Network
from hotwallet.errors import InvalidKeyFormat
from hotwallet.hdwallet.base import KeyDeriver, KeyMaterial

PRIVATE_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


def normalize_private_key(private_key: str) -> str:
    """Return the key as ``0x`` + 64 hex chars.

    Raises:
        InvalidKeyFormat: If the key is not 32 bytes of hex
    """
    if not private_key or not isinstance(private_key, str):
        raise InvalidKeyFormat("Private key must be a non-empty string")

    key = private_key.strip()
    if not key.startswith("0x"):
        key = "0x" + key

    if not PRIVATE_KEY_RE.match(key):
        raise InvalidKeyFormat("Invalid private key format. Must be 64 hex characters")

    if not Secp256k1PrivateKey.IsValidBytes(bytes.fromhex(key[2:])):
        raise InvalidKeyFormat("Private key is out of range for secp256k1")

    return key


class ETHKeyDeriver(KeyDeriver):
    """Ethereum key derivation (BIP44, coin type 60).

    Example:
        deriver = ETHKeyDeriver()
        key = deriver.generate(Network.TESTNET)
        # KeyMaterial(address="0x...", derivation_path="m/44'/60'/0'/0/0", ...)
    """

    def __init__(self, chain: ChainKind = ChainKind.ETHEREUM):
        self._chain = chain

    @property
    def chain(self) -> ChainKind:
        return self._chain

    def derivation_path(self, network: Network, index: int = 0) -> str:
        return f"m/44'/60'/0'/0/{index}"

    def from_mnemonic(self, mnemonic: str, network: Network, index: int = 0) -> KeyMaterial:
        try:
            seed = Bip39SeedGenerator(mnemonic).Generate()
        except Exception as e:
            raise InvalidKeyFormat(f"Invalid mnemonic: {e}")

        addr_ctx = (
            Bip44.FromSeed(seed, Bip44Coins.ETHEREUM)
            .Purpose()
            .Coin()
            .Account(0)
            .Change(Bip44Changes.CHAIN_EXT)
            .AddressIndex(index)
        )
        private_key = "0x" + addr_ctx.PrivateKey().Raw().ToHex()

        return KeyMaterial(
            chain=self.chain,
            network=network,
            address=self.derive_address(private_key, network),
            public_key="0x" + addr_ctx.PublicKey().RawUncompressed().ToHex(),
            derivation_path=self.derivation_path(network, index),
            private_key=private_key,
            mnemonic=mnemonic,
        )

    def public_key(self, private_key: str, network: Network) -> bytes:
        key = normalize_private_key(private_key)
        return Secp256k1PrivateKey.FromBytes(bytes.fromhex(key[2:])).PublicKey().RawUncompressed().ToBytes()

    def derive_address(self, private_key: str, network: Network) -> str:
        return Account.from_key(normalize_private_key(private_key)).address

    def validate_address(self, address: str, network: Network) -> bool:
        """Check hex format and, for mixed-case input, the EIP-55 checksum."""
        if not isinstance(address, str) or not address.startswith("0x"):
            return False
        return is_address(address)
