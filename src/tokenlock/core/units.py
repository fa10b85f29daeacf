"""
Conversion between human-readable token amounts and smallest units.

``parse_units("10", 18)`` gives ``10 * 10**18``; ``format_units`` reverses it.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

from .exceptions import InvalidAmountError

MAX_DECIMALS = 18
UINT256_DIGITS = 78


def _check_decimals(decimals: int) -> None:
    if not isinstance(decimals, int) or decimals < 0 or decimals > MAX_DECIMALS:
        raise InvalidAmountError(f"Decimals must be between 0 and {MAX_DECIMALS}")


def parse_units(value: str | int | Decimal, decimals: int = 18) -> int:
    """
    Convert a human amount into integer smallest units.

    Raises:
        InvalidAmountError: If the value is not a number, is negative, or has
            more fractional digits than ``decimals`` allows
    """
    _check_decimals(decimals)
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise InvalidAmountError(f"Invalid amount: {value!r}") from exc

    if not amount.is_finite() or amount < 0:
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    with localcontext() as ctx:
        ctx.prec = UINT256_DIGITS + MAX_DECIMALS
        scaled = amount.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise InvalidAmountError(
            f"Amount {value!r} has more than {decimals} decimal places"
        )
    return int(scaled)


def format_units(value: int, decimals: int = 18) -> str:
    """Render integer smallest units as a plain decimal string."""
    _check_decimals(decimals)
    with localcontext() as ctx:
        ctx.prec = UINT256_DIGITS + MAX_DECIMALS
        amount = Decimal(int(value)).scaleb(-decimals)
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def parse_ether(value: str | int | Decimal) -> int:
    return parse_units(value, 18)


def format_ether(value: int) -> str:
    return format_units(value, 18)
