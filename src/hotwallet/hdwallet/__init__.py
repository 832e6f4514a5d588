"""HD wallet module for deterministic key generation and address derivation."""

from hotwallet.hdwallet.base import KeyDeriver, KeyMaterial
from hotwallet.hdwallet.factory import get_key_deriver, get_supported_chains

__all__ = [
    "KeyDeriver",
    "KeyMaterial",
    "get_key_deriver",
    "get_supported_chains",
]
