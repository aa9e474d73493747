"""
amounts.py - Conversions between human amounts and smallest units

Token balances are integers counted in the smallest unit (10**-decimals of a
token). These helpers convert to and from decimal strings, mirroring
parseUnits / formatUnits of the usual web3 tooling.
"""

from __future__ import annotations
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from .core import MAX_UINT256

ETHER_DECIMALS = 18

AmountLike = Union[int, str, Decimal]


def parse_units(value: AmountLike, decimals: int = ETHER_DECIMALS) -> int:
    """
    Convert a token amount to an integer count of smallest units.

    Examples:
        parse_units("1.5", 18) -> 1500000000000000000
        parse_units(-100, 18)  -> -100000000000000000000

    Raises:
        ValueError: For floats, non-numeric input, more fractional digits than
                    decimals, or a magnitude beyond uint256
    """
    if isinstance(value, (bool, float)):
        # floats lose precision; pass a string instead
        raise ValueError(f"amount must be int, str or Decimal, got {type(value).__name__}")
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    try:
        amount = Decimal(value) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise ValueError(f"invalid amount: {value!r}") from None
    if not amount.is_finite():
        raise ValueError(f"amount must be finite, got {value!r}")
    # exact for any input length; the default context would round long inputs
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, len(amount.as_tuple().digits) + decimals + 1)
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{value!r} has more than {decimals} fractional digits")
        units = int(scaled)
    if abs(units) > MAX_UINT256:
        raise ValueError(f"{value!r} does not fit in uint256")
    return units


def format_units(value: int, decimals: int = ETHER_DECIMALS) -> str:
    """
    Render an integer count of smallest units as a decimal string.

    Always keeps at least one fractional digit: format_units(10**18) == "1.0".
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"value must be int, got {type(value).__name__}")
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    frac_str = str(frac).rjust(decimals, "0").rstrip("0") or "0"
    return f"{sign}{whole}.{frac_str}"


def parse_ether(value: AmountLike) -> int:
    return parse_units(value, ETHER_DECIMALS)


def format_ether(value: int) -> str:
    return format_units(value, ETHER_DECIMALS)
