"""Key deriver factory.

Maps each chain variant to the deriver for its key family. ERC-20 tokens
use Ethereum keys and addresses.
"""

from hotwallet.chains import ChainKind
from hotwallet.errors import UnsupportedChain
from hotwallet.hdwallet.base import KeyDeriver
from hotwallet.hdwallet.btc import BTCKeyDeriver
from hotwallet.hdwallet.eth import ETHKeyDeriver

# Chain variant to deriver class mapping
DERIVER_CLASSES: dict[ChainKind, type[KeyDeriver]] = {
    ChainKind.BITCOIN: BTCKeyDeriver,
    ChainKind.ETHEREUM: ETHKeyDeriver,
    ChainKind.ERC20: ETHKeyDeriver,
}


def get_supported_chains() -> list[ChainKind]:
    """Get list of chain variants with key derivation."""
    return list(DERIVER_CLASSES.keys())


def get_key_deriver(chain: "ChainKind | str") -> KeyDeriver:
    """Get the key deriver for a chain variant or asset symbol.

    Raises:
        UnsupportedChain: If the chain is not supported
    """
    try:
        kind = ChainKind.parse(chain)
    except ValueError as e:
        raise UnsupportedChain(str(e))

    deriver_class = DERIVER_CLASSES.get(kind)
    if deriver_class is None:
        raise UnsupportedChain(f"No key derivation for {kind.value}")

    if deriver_class is ETHKeyDeriver:
        return ETHKeyDeriver(chain=kind)
    return deriver_class()
