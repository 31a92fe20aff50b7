"""
dex/adapters/ - Venue-specific quoting adapters.

Adapters:
- uniswap_v2: V2 router/factory ABI (Uniswap V2, SushiSwap)
- uniswap_v3: Uniswap V3 QuoterV2 adapter
- curve: Curve stable-swap pools
"""

from dex.adapters.curve import CurveAdapter, CurvePool
from dex.adapters.uniswap_v2 import UniswapV2Adapter
from dex.adapters.uniswap_v3 import (
    UniswapV3Adapter,
    UniswapV3QuoteResult,
)

__all__ = [
    "CurveAdapter",
    "CurvePool",
    "UniswapV2Adapter",
    "UniswapV3Adapter",
    "UniswapV3QuoteResult",
]
