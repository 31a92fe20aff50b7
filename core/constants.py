# PATH: core/constants.py
"""
Constants for ARBY-MEV.

Contains enums, defaults, and cost-model constants.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Final, List


# =============================================================================
# VENUES
# =============================================================================

class VenueKind(str, Enum):
    """Trading venues known to the bot (closed set)."""
    UNISWAP_V2 = "uniswap_v2"
    SUSHISWAP = "sushiswap"
    UNISWAP_V3 = "uniswap_v3"
    CURVE = "curve"


class PriceSourceKind(str, Enum):
    """Where a price sample came from."""
    VENUE = "venue"
    API = "api"


class GasStrategy(str, Enum):
    """Gas pricing strategies."""
    FIXED = "fixed"
    EIP1559 = "eip1559"
    DYNAMIC = "dynamic"


# V3 fee tiers (in hundredths of a bip)
V3_FEE_TIERS: List[int] = [100, 500, 3000, 10000]


# =============================================================================
# UNITS
# =============================================================================

WEI_PER_GWEI: Final[int] = 10**9
WEI_PER_ETH: Final[int] = 10**18
BPS_PER_PERCENT: Final[int] = 100


# =============================================================================
# BLOCK FEED
# =============================================================================

DEFAULT_POLLING_INTERVAL_MS = 2000
BLOCK_QUEUE_SIZE = 100


# =============================================================================
# PRICING
# =============================================================================

DEFAULT_PRICE_FRESHNESS_SECONDS = 60
DEFAULT_MAX_PRICE_DEVIATION_PCT = Decimal("1.0")
DEFAULT_MIN_PRICE_SOURCES = 2
NUMERAIRE_REFERENCE_PRICE = Decimal("1")


# =============================================================================
# SCANNER
# =============================================================================

SCAN_INTERVAL_SECONDS = 1.0
QUIET_SCAN_INTERVAL_SECONDS = 10.0
PROVISIONAL_GAS_COST_USD = Decimal("0.01")
SCANNER_CONFIDENCE = 0.8


# =============================================================================
# STRATEGY COST MODEL (USD)
# =============================================================================

# Keyed by number of tokens in the path; anything longer uses the fallback.
PATH_LENGTH_GAS_USD: Dict[int, Decimal] = {
    3: Decimal("0.005"),
    4: Decimal("0.008"),
}
PATH_LENGTH_GAS_FALLBACK_USD = Decimal("0.012")

ROUTE_BASE_GAS_USD = Decimal("0.005")
ROUTE_LENGTH_SURCHARGE_USD: Dict[int, Decimal] = {
    2: Decimal("0.001"),
    3: Decimal("0.002"),
}
ROUTE_LENGTH_SURCHARGE_FALLBACK_USD = Decimal("0.004")
VENUE_GAS_USD: Dict[VenueKind, Decimal] = {
    VenueKind.UNISWAP_V2: Decimal("0.001"),
    VenueKind.SUSHISWAP: Decimal("0.001"),
    VenueKind.UNISWAP_V3: Decimal("0.0015"),
    VenueKind.CURVE: Decimal("0.002"),
}
ROUTE_GAS_MULTIPLIER = Decimal("1.2")


# =============================================================================
# EXECUTION
# =============================================================================

DEFAULT_GAS_LIMIT = 500_000
CANCEL_GAS_LIMIT = 21_000
CANCEL_GAS_BUMP_PCT = 20
GAS_REFRESH_SECONDS = 15
FEE_HISTORY_BLOCKS = 10
FEE_HISTORY_PERCENTILES: List[int] = [10, 50, 90]
TX_POLL_INTERVAL_SECONDS = 1.0

FLASH_LOAN_PRINCIPAL_MULTIPLIER = Decimal("2")
FLASH_LOAN_MODE_NO_DEBT = 0
AAVE_FLASH_LOAN_FEE_BPS = 9

# Marks a degraded transaction payload that no contract understands.
PLACEHOLDER_SELECTOR = "0x12345678"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
