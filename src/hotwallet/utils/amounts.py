"""Exact conversion between whole-unit decimal strings and base units."""

from decimal import Decimal, InvalidOperation, localcontext

from hotwallet.errors import InvalidAmount

# Enough digits for any uint256
_PRECISION = 80


def parse_amount(value: "str | Decimal | int") -> Decimal:
    """Parse a positive whole-unit amount.

    Raises:
        InvalidAmount: If the value is not a finite positive number
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidAmount(f"Invalid amount: {value!r}")

    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(f"Amount must be a positive number, got {value!r}")
    return amount


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a whole-unit amount to integer base units without rounding.

    Raises:
        InvalidAmount: If the amount has more than ``decimals`` fractional digits
    """
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise InvalidAmount(f"Amount {amount} has more than {decimals} decimal places")
        return int(scaled)


def from_base_units(raw: int, decimals: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(raw).scaleb(-decimals)
