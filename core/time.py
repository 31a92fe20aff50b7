# PATH: core/time.py
"""
Time utilities for ARBY-MEV.

Freshness helpers shared by the price cache and the gas optimizer.
"""

import time
from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def age_seconds(timestamp_ms: int, current_ms: Optional[int] = None) -> float:
    """Seconds elapsed since a millisecond timestamp."""
    current = current_ms if current_ms is not None else now_ms()
    return (current - timestamp_ms) / 1000


def is_fresh(
    timestamp_ms: int,
    max_age_seconds: float,
    current_ms: Optional[int] = None,
) -> bool:
    """
    Check if a millisecond timestamp is within max_age_seconds.

    A zero timestamp means "never set" and is never fresh.
    """
    if timestamp_ms <= 0:
        return False
    return age_seconds(timestamp_ms, current_ms) <= max_age_seconds
