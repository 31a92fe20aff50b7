"""
core - Core utilities and models for ARBY-MEV.

This package contains:
- models.py: Data models (TrackedAsset, Quote, ArbitrageOpportunity, ...)
- constants.py: Enums and cost-model constants
- exceptions.py: Typed exceptions with error codes
- math.py: Safe unit conversions (no float money)
- time.py: Timestamps and freshness checks
- logging.py: Structured JSON logging
- locks.py: asyncio reader/writer lock
- lifecycle.py: Stopped/Running state for background services
- retry.py: Bounded exponential backoff (tenacity)
"""

from core.constants import GasStrategy, PriceSourceKind, VenueKind
from core.exceptions import (
    ArbyError,
    ConfigError,
    ErrorCode,
    ExecutionError,
    FeedError,
    InfraError,
    MevShareError,
    PriceError,
    QuoteError,
    RPCResponseError,
    StrategyError,
    TransactionTimeoutError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    ArbitrageOpportunity,
    ArbitrageTransaction,
    ConsensusPrice,
    PriceSample,
    PriceSourceId,
    Quote,
    TrackedAsset,
    TransactionResult,
)

__all__ = [
    # Constants
    "GasStrategy",
    "PriceSourceKind",
    "VenueKind",
    # Exceptions
    "ArbyError",
    "ConfigError",
    "ErrorCode",
    "ExecutionError",
    "FeedError",
    "InfraError",
    "MevShareError",
    "PriceError",
    "QuoteError",
    "RPCResponseError",
    "StrategyError",
    "TransactionTimeoutError",
    "ValidationError",
    # Models
    "ArbitrageOpportunity",
    "ArbitrageTransaction",
    "ConsensusPrice",
    "PriceSample",
    "PriceSourceId",
    "Quote",
    "TrackedAsset",
    "TransactionResult",
    # Logging
    "get_logger",
    "setup_logging",
]
