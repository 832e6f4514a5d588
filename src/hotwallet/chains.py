"""Supported chain variants.

The engine dispatches on ``ChainKind``, a closed set of chain families.
Symbols coming from the API edge (``BTC``, ``ETH``, ``USDT`` ...) are parsed
once into a ``ChainKind`` and never compared as strings afterwards.
"""

from enum import Enum


class ChainKind(str, Enum):
    """Closed set of chain variants handled by the engine."""

    BITCOIN = "bitcoin"
    ETHEREUM = "ethereum"
    ERC20 = "erc20"

    @property
    def is_utxo(self) -> bool:
        return self is ChainKind.BITCOIN

    @property
    def key_family(self) -> "ChainKind":
        """Chain whose keys/addresses this variant uses.

        ERC-20 tokens live on Ethereum addresses, so they share Ethereum's
        key derivation and per-address send lock.
        """
        if self is ChainKind.ERC20:
            return ChainKind.ETHEREUM
        return self

    @property
    def native_symbol(self) -> str:
        return "BTC" if self is ChainKind.BITCOIN else "ETH"

    @property
    def decimals(self) -> int:
        """Decimals of the native asset (token decimals come from the contract)."""
        return 8 if self is ChainKind.BITCOIN else 18

    @classmethod
    def parse(cls, value: "str | ChainKind") -> "ChainKind":
        """Parse a chain kind or an asset symbol."""
        if isinstance(value, ChainKind):
            return value

        normalized = str(value).strip().upper()
        kind = SYMBOL_ALIASES.get(normalized)
        if kind is None:
            raise ValueError(f"Unsupported chain: {value}")
        return kind


SYMBOL_ALIASES: dict[str, ChainKind] = {
    "BITCOIN": ChainKind.BITCOIN,
    "BTC": ChainKind.BITCOIN,
    "ETHEREUM": ChainKind.ETHEREUM,
    "ETH": ChainKind.ETHEREUM,
    "ERC20": ChainKind.ERC20,
    "USDT": ChainKind.ERC20,
    "USDT-ERC20": ChainKind.ERC20,
}
