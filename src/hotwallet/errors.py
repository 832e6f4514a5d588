"""Error taxonomy for the wallet engine.

Every caller-facing failure carries a stable ``code`` plus a free-text
message. Provider stack traces never leave this package: adapters catch
library exceptions and re-raise one of these.
"""

from typing import Optional


class WalletError(Exception):
    """Base class for all wallet engine failures."""

    code: str = "wallet_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "details": self.message}


class InvalidAddress(WalletError):
    """Recipient or sender address is not valid for the chain/network."""

    code = "invalid_address"


class InvalidKeyFormat(WalletError):
    """Private key cannot be parsed for the target chain/network."""

    code = "invalid_key_format"


class InvalidAmount(WalletError):
    """Amount is not a positive decimal representable in base units."""

    code = "invalid_amount"


class InsufficientBalance(WalletError):
    """Not enough funds (or gas) to cover the requested spend.

    ``available`` and ``required`` are always in the same base unit
    (satoshi, wei or token units) named by ``unit``.
    """

    code = "insufficient_balance"

    def __init__(
        self,
        available: int,
        required: int,
        unit: str = "satoshi",
        message: Optional[str] = None,
    ):
        self.available = available
        self.required = required
        self.unit = unit
        super().__init__(
            message
            or f"Insufficient balance. Available: {available} {unit}, Required: {required} {unit}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            {"available": self.available, "required": self.required, "unit": self.unit}
        )
        return data


class NetworkUnavailable(WalletError):
    """Chain endpoint unreachable, timed out, or all fallbacks exhausted."""

    code = "network_unavailable"


class SigningFailed(WalletError):
    """Transaction could not be fully signed."""

    code = "signing_failed"


class BroadcastRejected(WalletError):
    """Node rejected the serialized transaction."""

    code = "broadcast_rejected"


class UnsupportedChain(WalletError):
    """Chain kind or network is not configured."""

    code = "unsupported_chain"
