"""
Fixed-point conversion between contract integers (scaled by 10^18) and Decimal.

Conversions are exact: the working context has enough precision for any
uint256, and to_wei refuses values that would need rounding. Only
format_amount rounds, and only for display.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Context, Decimal, InvalidOperation

TOKEN_DECIMALS = 18
WEI_PER_TOKEN = 10**TOKEN_DECIMALS

# uint256 has at most 78 decimal digits
_EXACT = Context(prec=100)


def from_wei(value: int) -> Decimal:
    """Convert a 10^18-scaled integer to its exact Decimal token amount."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected int, got {type(value).__name__}")
    return Decimal(value).scaleb(-TOKEN_DECIMALS, context=_EXACT)


def to_decimal(value: Decimal | str | int) -> Decimal:
    """Parse a user-supplied amount without going through float."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise TypeError("bool is not an amount")
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as e:
            raise ValueError(f"invalid amount: {value!r}") from e
    else:
        raise TypeError(f"amounts must be Decimal, str or int, got {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"invalid amount: {value!r}")
    return result


def to_wei(value: Decimal | str | int) -> int:
    """
    Convert a token amount to the contract's 10^18-scaled integer.

    Raises ValueError for negative amounts and for more than 18 fractional digits.
    """
    amount = to_decimal(value)
    if amount < 0:
        raise ValueError("amount must be non-negative")
    scaled = amount.scaleb(TOKEN_DECIMALS, context=_EXACT)
    if scaled != scaled.to_integral_value(context=_EXACT):
        raise ValueError(f"amount {value!r} has more than {TOKEN_DECIMALS} decimal places")
    return int(scaled)


def format_amount(value: Decimal, places: int = 4) -> str:
    """Display form: at most `places` fractional digits, trailing zeros dropped."""
    quantum = Decimal(1).scaleb(-places)
    text = format(value.quantize(quantum, rounding=ROUND_DOWN, context=_EXACT), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def plain(value: Decimal) -> str:
    """Exact plain-notation string (no exponent, no trailing zeros)."""
    if value == 0:
        return "0"
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
