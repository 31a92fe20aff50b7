"""
pricing/ - Multi-source price consensus.

- consensus: median / outlier rejection / mean
- sources: venue-derived and CoinGecko price sources
- oracle: PriceConsensusCache (reader/writer locked, TTL refresh)
"""

from pricing.consensus import ConsensusResult, compute_consensus
from pricing.oracle import PriceConsensusCache
from pricing.sources import CoinGeckoPriceSource, PriceSource, VenuePriceSource

__all__ = [
    "CoinGeckoPriceSource",
    "ConsensusResult",
    "PriceConsensusCache",
    "PriceSource",
    "VenuePriceSource",
    "compute_consensus",
]
