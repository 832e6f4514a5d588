"""Concurrency control for outbound sends.

Provides per-address locking so that two sends from the same address never
race for the same UTXOs or the same nonce.
"""

import asyncio
import logging
from typing import Hashable, Optional

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class AddressLock:
    """Registry of per-key ``asyncio.Lock`` objects.

    Keys are typically ``(chain_family, network, address)``. The registry is
    an instance owned by the caller, so independent services never share
    locks by accident.

    Example:
        locks = AddressLock(timeout=30.0)
        async with locks.hold(("bitcoin", "testnet", address), operation="send"):
            # select UTXOs, sign, broadcast
            ...
    """

    def __init__(self, timeout: Optional[float] = 30.0):
        """Initialize the registry.

        Args:
            timeout: Maximum time to wait for a lock (None = wait forever)
        """
        self.timeout = timeout
        self._locks: dict[Hashable, asyncio.Lock] = {}
        # Holders plus waiters per key
        self._users: dict[Hashable, int] = {}

    def get_lock(self, key: Hashable) -> asyncio.Lock:
        """Get or create the lock for a key."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def hold(self, key: Hashable, operation: str = "send", timeout: Optional[float] = None) -> "_HeldLock":
        """Context manager acquiring the lock for ``key``.

        Raises:
            LockTimeoutError: If the lock is not acquired within the timeout
        """
        return _HeldLock(self, key, operation, self.timeout if timeout is None else timeout)

    def _enter(self, key: Hashable) -> asyncio.Lock:
        self._users[key] = self._users.get(key, 0) + 1
        return self.get_lock(key)

    def _leave(self, key: Hashable) -> None:
        """Forget the lock for ``key`` once nobody holds or waits for it."""
        remaining = self._users.get(key, 1) - 1
        if remaining > 0:
            self._users[key] = remaining
            return

        self._users.pop(key, None)
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def clear(self) -> None:
        """Drop locks that nobody holds or waits for."""
        idle = [key for key, lock in self._locks.items() if not lock.locked() and not self._users.get(key)]
        for key in idle:
            del self._locks[key]


class _HeldLock:
    def __init__(self, registry: AddressLock, key: Hashable, operation: str, timeout: Optional[float]):
        self.key = key
        self.operation = operation
        self.timeout = timeout
        self._registry = registry
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "_HeldLock":
        self._lock = self._registry._enter(self.key)
        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
        except asyncio.TimeoutError:
            self._registry._leave(self.key)
            logger.warning(f"Lock timeout for {self.key} after {self.timeout}s: {self.operation}")
            raise LockTimeoutError(f"Could not acquire lock for {self.key} within {self.timeout}s")
        except asyncio.CancelledError:
            self._registry._leave(self.key)
            raise

        self._acquired = True
        logger.debug(f"Lock acquired for {self.key}: {self.operation}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired:
            self._lock.release()
            self._acquired = False
            self._registry._leave(self.key)
            logger.debug(f"Lock released for {self.key}: {self.operation}")
        return False
