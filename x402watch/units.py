"""
Token amount and timestamp formatting.

Balances are raw uint256 values in the token's smallest unit and stay Python
ints everywhere; only display strings are produced here.
"""

from datetime import datetime, timezone
from typing import Optional


def format_units(value: int, decimals: int) -> str:
    """
    Render a raw integer amount as a decimal string.

    Trailing zeros are trimmed but at least 2 fractional digits are kept:
        format_units(5_000_000, 6) -> "5.00"
        format_units(5_123_000, 6) -> "5.123"
        format_units(1, 6)         -> "0.000001"
    """
    if value < 0:
        raise ValueError(f"token amounts are unsigned, got {value}")
    if decimals < 0:
        raise ValueError(f"decimals must be >= 0, got {decimals}")

    whole, frac = divmod(value, 10 ** decimals)
    frac_digits = str(frac).zfill(decimals) if decimals else ""
    return f"{whole}.{frac_digits.rstrip('0').ljust(2, '0')}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(moment: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with millisecond precision and a Z suffix, e.g. 2025-01-15T12:00:00.000Z."""
    if moment is None:
        return None
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")
