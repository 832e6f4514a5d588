"""BTC key derivation using BIP44 (legacy P2PKH).

Derivation path: m/44'/0'/0'/0/index (mainnet), m/44'/1'/0'/0/index (testnet)
Address format: base58check P2PKH (1... mainnet, m.../n... testnet)
Private key format: WIF (compressed)

The network is part of the key: a WIF key carries a version byte, and a key
encoded for one network is rejected on the other.
"""

import re

from bip_utils import (
    Base58Decoder,
    Bip39SeedGenerator,
    Bip44,
    Bip44Changes,
    Bip44Coins,
    P2PKHAddrDecoder,
    P2PKHAddrEncoder,
    P2PKHPubKeyModes,
    P2SHAddrDecoder,
    Secp256k1PrivateKey,
    SegwitBech32Decoder,
)

from hotwallet.chains import ChainKind
from hotwallet.config import Network
from hotwallet.errors import InvalidAddress, InvalidKeyFormat
from hotwallet.hdwallet.base import KeyDeriver, KeyMaterial

HEX_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")

# Version bytes per network
P2PKH_VERSION = {Network.MAINNET: b"\x00", Network.TESTNET: b"\x6f"}
P2SH_VERSION = {Network.MAINNET: b"\x05", Network.TESTNET: b"\xc4"}
WIF_VERSION = {Network.MAINNET: b"\x80", Network.TESTNET: b"\xef"}
BECH32_HRP = {Network.MAINNET: "bc", Network.TESTNET: "tb"}


def _other(network: Network) -> Network:
    return Network.MAINNET if network.is_testnet else Network.TESTNET


def check_address(address: str, network: Network) -> str:
    """Check that ``address`` is a P2PKH, P2SH or segwit address on ``network``.

    Returns:
        The address with surrounding whitespace removed

    Raises:
        InvalidAddress: If the address is malformed or belongs to another network
    """
    if not address:
        raise InvalidAddress("Address is empty")

    address = address.strip()
    hrp = BECH32_HRP[network]

    if address.lower().startswith(hrp + "1"):
        try:
            SegwitBech32Decoder.Decode(hrp, address)
        except Exception as e:
            raise InvalidAddress(f"Invalid {network.value} bech32 address: {e}")
        return address

    for decoder, versions in ((P2PKHAddrDecoder, P2PKH_VERSION), (P2SHAddrDecoder, P2SH_VERSION)):
        try:
            decoder.DecodeAddr(address, net_ver=versions[network])
        except Exception:
            continue
        return address

    raise InvalidAddress(f"Invalid Bitcoin {network.value} address: {address}")


class BTCKeyDeriver(KeyDeriver):
    """Bitcoin key derivation (BIP44, P2PKH).

    Example:
        deriver = BTCKeyDeriver()
        key = deriver.generate(Network.TESTNET)
        # KeyMaterial(address="m...", derivation_path="m/44'/1'/0'/0/0", ...)
    """

    @property
    def chain(self) -> ChainKind:
        return ChainKind.BITCOIN

    def derivation_path(self, network: Network, index: int = 0) -> str:
        coin_type = 1 if network.is_testnet else 0
        return f"m/44'/{coin_type}'/0'/0/{index}"

    def from_mnemonic(self, mnemonic: str, network: Network, index: int = 0) -> KeyMaterial:
        """Derive the BIP44 key at ``index`` from a mnemonic."""
        try:
            seed = Bip39SeedGenerator(mnemonic).Generate()
        except Exception as e:
            raise InvalidKeyFormat(f"Invalid mnemonic: {e}")

        coin = Bip44Coins.BITCOIN_TESTNET if network.is_testnet else Bip44Coins.BITCOIN
        addr_ctx = (
            Bip44.FromSeed(seed, coin)
            .Purpose()
            .Coin()
            .Account(0)
            .Change(Bip44Changes.CHAIN_EXT)
            .AddressIndex(index)
        )
        wif = addr_ctx.PrivateKey().ToWif()

        return KeyMaterial(
            chain=self.chain,
            network=network,
            address=self.derive_address(wif, network),
            public_key=addr_ctx.PublicKey().RawCompressed().ToHex(),
            derivation_path=self.derivation_path(network, index),
            private_key=wif,
            mnemonic=mnemonic,
        )

    def decode_private_key(self, private_key: str, network: Network) -> tuple[bytes, bool]:
        """Parse a WIF or raw hex key.

        Returns:
            Tuple of (32-byte secret, compressed flag)

        Raises:
            InvalidKeyFormat: If the key is malformed or encoded for the other network
        """
        if not private_key or not isinstance(private_key, str):
            raise InvalidKeyFormat("Private key must be a non-empty string")

        key = private_key.strip()

        if HEX_KEY_RE.match(key):
            secret = bytes.fromhex(key[2:] if key.startswith("0x") else key)
            compressed = True
        else:
            try:
                decoded = Base58Decoder.CheckDecode(key)
            except Exception:
                raise InvalidKeyFormat("Private key is neither WIF nor 64-character hex")

            version, payload = decoded[:1], decoded[1:]
            if version == WIF_VERSION[_other(network)]:
                raise InvalidKeyFormat(
                    f"Private key is encoded for {_other(network).value}, not {network.value}"
                )
            if version != WIF_VERSION[network]:
                raise InvalidKeyFormat("Unknown WIF version byte")

            if len(payload) == 33 and payload[-1] == 0x01:
                secret, compressed = payload[:32], True
            elif len(payload) == 32:
                secret, compressed = payload, False
            else:
                raise InvalidKeyFormat("Invalid WIF payload length")

        if not Secp256k1PrivateKey.IsValidBytes(secret):
            raise InvalidKeyFormat("Private key is out of range for secp256k1")

        return secret, compressed

    def public_key(self, private_key: str, network: Network) -> bytes:
        secret, compressed = self.decode_private_key(private_key, network)
        pub = Secp256k1PrivateKey.FromBytes(secret).PublicKey()
        if compressed:
            return pub.RawCompressed().ToBytes()
        return pub.RawUncompressed().ToBytes()

    def derive_address(self, private_key: str, network: Network) -> str:
        """Derive the P2PKH address for a key on a network."""
        secret, compressed = self.decode_private_key(private_key, network)
        pub = Secp256k1PrivateKey.FromBytes(secret).PublicKey()
        mode = P2PKHPubKeyModes.COMPRESSED if compressed else P2PKHPubKeyModes.UNCOMPRESSED
        return P2PKHAddrEncoder.EncodeKey(
            pub, net_ver=P2PKH_VERSION[network], pub_key_mode=mode
        )

    def validate_address(self, address: str, network: Network) -> bool:
        try:
            check_address(address, network)
        except InvalidAddress:
            return False
        return True
