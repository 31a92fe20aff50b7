"""
pricing/consensus.py - Multi-source price consensus.

Pure functions, no I/O:
1. median of all samples
2. reject samples deviating from the median by more than max_deviation_pct
3. consensus = mean of the survivors, or the median if nothing survives
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence, Tuple

from core.exceptions import ErrorCode, PriceError
from core.math import mean, median
from core.models import PriceSample


@dataclass(frozen=True)
class ConsensusResult:
    """Outcome of one consensus computation."""
    price: Decimal
    median: Decimal
    accepted: Tuple[PriceSample, ...]
    rejected: Tuple[PriceSample, ...]


def deviation_pct(value: Decimal, reference: Decimal) -> Decimal:
    """Absolute deviation of value from reference, in percent."""
    if reference == 0:
        return Decimal("0") if value == 0 else Decimal("Infinity")
    return abs(value - reference) / reference * 100


def compute_consensus(
    samples: Sequence[PriceSample],
    max_deviation_pct: Decimal,
) -> ConsensusResult:
    """
    Consensus price over a sample set.

    Example:
        {998, 1000, 1050} with 1% -> median 1000, 1050 rejected, price 999

    Raises:
        PriceError: If samples is empty
    """
    if not samples:
        raise PriceError(code=ErrorCode.PRICE_NO_SAMPLES, message="No price samples")

    mid = median([s.price_usd for s in samples])
    accepted = tuple(s for s in samples if deviation_pct(s.price_usd, mid) <= max_deviation_pct)
    rejected = tuple(s for s in samples if s not in accepted)

    price = mean([s.price_usd for s in accepted]) if accepted else mid
    return ConsensusResult(price=price, median=mid, accepted=accepted, rejected=rejected)
