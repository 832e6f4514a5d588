"""Key material and the derivation interface.

Each chain family implements ``KeyDeriver``: it generates fresh
mnemonic-backed keys, re-imports mnemonics, and derives the address that a
private key controls on a given network.

Security: private keys and mnemonics are kept out of ``repr`` and out of
``public_dict()``, so logging a ``KeyMaterial`` never leaks them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from bip_utils import Bip39MnemonicGenerator, Bip39WordsNum

from hotwallet.chains import ChainKind
from hotwallet.config import Network


@dataclass(frozen=True)
class KeyMaterial:
    """A generated or imported key and the address it controls."""

    chain: ChainKind
    network: Network
    address: str
    public_key: str
    derivation_path: str
    private_key: str = field(repr=False)
    mnemonic: Optional[str] = field(default=None, repr=False)

    def public_dict(self) -> dict:
        """Fields that may be returned to callers and logged."""
        return {
            "chain": self.chain.value,
            "network": self.network.value,
            "address": self.address,
            "public_key": self.public_key,
            "derivation_path": self.derivation_path,
        }


class KeyDeriver(ABC):
    """Abstract base class for per-chain key derivation.

    Usage:
        deriver = BTCKeyDeriver()
        key = deriver.generate(Network.TESTNET)
        assert deriver.derive_address(key.private_key, Network.TESTNET) == key.address
    """

    @property
    @abstractmethod
    def chain(self) -> ChainKind:
        """Chain family handled by this deriver."""
        pass

    @abstractmethod
    def derivation_path(self, network: Network, index: int = 0) -> str:
        """BIP44 path of the default address for a network."""
        pass

    @abstractmethod
    def from_mnemonic(
        self, mnemonic: str, network: Network, index: int = 0
    ) -> KeyMaterial:
        """Derive key material from a BIP39 mnemonic.

        Raises:
            InvalidKeyFormat: If the mnemonic is not valid BIP39
        """
        pass

    @abstractmethod
    def derive_address(self, private_key: str, network: Network) -> str:
        """Derive the address controlled by ``private_key`` on ``network``.

        Pure and deterministic.

        Raises:
            InvalidKeyFormat: If the key cannot be parsed for this chain/network
        """
        pass

    @abstractmethod
    def public_key(self, private_key: str, network: Network) -> bytes:
        """Serialized public key for ``private_key``."""
        pass

    @abstractmethod
    def validate_address(self, address: str, network: Network) -> bool:
        """Check that ``address`` is well-formed for this chain and network."""
        pass

    def generate(self, network: Network) -> KeyMaterial:
        """Generate a fresh 12-word mnemonic and its default key."""
        mnemonic = Bip39MnemonicGenerator().FromWordsNumber(Bip39WordsNum.WORDS_NUM_12)
        return self.from_mnemonic(mnemonic.ToStr(), network)
