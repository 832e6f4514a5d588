"""Utility modules for hotwallet."""

from hotwallet.utils.locks import AddressLock, LockTimeoutError

__all__ = ["AddressLock", "LockTimeoutError"]
