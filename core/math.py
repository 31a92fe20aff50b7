# PATH: core/math.py
"""
Math utilities for ARBY-MEV.

Safe conversions between token units, wei and USD (no float money).
"""

from decimal import Decimal, InvalidOperation, ROUND_CEILING
from typing import Sequence, Union

from core.constants import BPS_PER_PERCENT, WEI_PER_GWEI


def safe_decimal(value: Union[str, int, float, Decimal, None], default: Decimal = Decimal("0")) -> Decimal:
    """
    Safely convert value to Decimal.

    Args:
        value: Value to convert
        default: Default if conversion fails

    Returns:
        Decimal value
    """
    if value is None:
        return default

    try:
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def percent_to_bps(percent: Union[str, int, float, Decimal]) -> int:
    """
    Convert a percentage to whole basis points (0.5% -> 50 bps).
    """
    return int(safe_decimal(percent) * BPS_PER_PERCENT)


def bps_of(amount: int, bps: int) -> int:
    """Integer share of amount in basis points, rounded down."""
    return amount * bps // 10_000


def normalize_to_decimals(
    amount: Union[str, int, Decimal],
    decimals: int,
) -> Decimal:
    """
    Normalize amount to token decimals (wei to token units).

    Args:
        amount: Amount in smallest unit (wei)
        decimals: Token decimals

    Returns:
        Normalized amount
    """
    amt = safe_decimal(amount)
    divisor = Decimal(10) ** decimals
    return amt / divisor


def denormalize_from_decimals(
    amount: Union[str, float, Decimal],
    decimals: int,
) -> int:
    """
    Denormalize amount from token units to wei.

    Args:
        amount: Amount in token units
        decimals: Token decimals

    Returns:
        Amount in wei (int)
    """
    amt = safe_decimal(amount)
    multiplier = Decimal(10) ** decimals
    return int(amt * multiplier)


def gwei_to_wei(gwei: Union[str, int, float, Decimal]) -> int:
    """Convert gwei to wei."""
    return int(safe_decimal(gwei) * WEI_PER_GWEI)


def wei_to_gwei(wei: int) -> Decimal:
    """Convert wei to gwei."""
    return Decimal(wei) / WEI_PER_GWEI


def scale_wei(wei: int, multiplier: Union[str, Decimal]) -> int:
    """Multiply a wei amount by a decimal factor, rounding down."""
    return int(Decimal(wei) * safe_decimal(multiplier))


def bump_by_percent(value: int, percent: int) -> int:
    """Raise an integer by percent, rounding up so the bump is never lost."""
    bumped = (Decimal(value) * (100 + percent) / 100).to_integral_value(rounding=ROUND_CEILING)
    return int(bumped)


def parse_hex_int(value: Union[str, int, None], default: int = 0) -> int:
    """Parse a JSON-RPC quantity ("0x1a") or pass through ints."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    if value in ("", "0x"):
        return default
    return int(value, 16)


def median(values: Sequence[Decimal]) -> Decimal:
    """Median; the mean of the two middle values for even counts."""
    if not values:
        raise ValueError("median of empty sequence")
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        raise ValueError("mean of empty sequence")
    return sum(values, Decimal("0")) / len(values)
