# PATH: core/exceptions.py
"""
Typed exceptions for ARBY-MEV.

Every error carries an ErrorCode so logs and callers can branch on the
category without string matching. Connectivity problems are InfraError
(retryable); everything else is terminal for the call that raised it.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_RPC_TIMEOUT = "INFRA_RPC_TIMEOUT"
    INFRA_RPC_RESPONSE = "INFRA_RPC_RESPONSE"
    INFRA_WS_ERROR = "INFRA_WS_ERROR"

    # Block feed
    FEED_CONSUMER_GONE = "FEED_CONSUMER_GONE"

    # Quotes / venues
    QUOTE_REVERT = "QUOTE_REVERT"
    QUOTE_TIMEOUT = "QUOTE_TIMEOUT"
    QUOTE_UNSUPPORTED_VENUE = "QUOTE_UNSUPPORTED_VENUE"

    # Pricing
    PRICE_UNKNOWN_ASSET = "PRICE_UNKNOWN_ASSET"
    PRICE_UNAVAILABLE = "PRICE_UNAVAILABLE"
    PRICE_NO_SAMPLES = "PRICE_NO_SAMPLES"
    PRICE_ZERO_DENOMINATOR = "PRICE_ZERO_DENOMINATOR"
    PRICE_SOURCE_FAILED = "PRICE_SOURCE_FAILED"

    # Strategy
    STRATEGY_NO_PROFITABLE_PATH = "STRATEGY_NO_PROFITABLE_PATH"

    # Execution
    EXEC_NO_SIGNER = "EXEC_NO_SIGNER"
    EXEC_DEGRADED_TX = "EXEC_DEGRADED_TX"
    EXEC_SUBMIT_FAILED = "EXEC_SUBMIT_FAILED"
    EXEC_TIMEOUT = "EXEC_TIMEOUT"
    EXEC_TX_NOT_FOUND = "EXEC_TX_NOT_FOUND"
    EXEC_NOT_PENDING = "EXEC_NOT_PENDING"
    EXEC_SENDER_MISMATCH = "EXEC_SENDER_MISMATCH"
    EXEC_GAS_UNAVAILABLE = "EXEC_GAS_UNAVAILABLE"

    # Private order flow
    MEV_SHARE_DISABLED = "MEV_SHARE_DISABLED"
    MEV_SHARE_REQUEST_FAILED = "MEV_SHARE_REQUEST_FAILED"

    # Contracts
    CONTRACT_UNKNOWN_FUNCTION = "CONTRACT_UNKNOWN_FUNCTION"
    CONTRACT_ENCODING_FAILED = "CONTRACT_ENCODING_FAILED"

    # Config / validation
    CONFIG_INVALID = "CONFIG_INVALID"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    UNKNOWN = "UNKNOWN"


class ArbyError(Exception):
    """Base exception for ARBY-MEV."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.UNKNOWN,
        message: str = "",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class InfraError(ArbyError):
    """Infrastructure-related errors (RPC, timeouts, transport)."""
    pass


class RPCResponseError(ArbyError):
    """The node answered with a JSON-RPC error object (e.g. execution reverted)."""
    pass


class FeedError(ArbyError):
    """Block feed failure."""
    pass


class QuoteError(ArbyError):
    """Venue quote call failed."""
    pass


class PriceError(ArbyError):
    """Price lookup or consensus failure."""
    pass


class StrategyError(ArbyError):
    """Strategy engine could not produce a result."""
    pass


class ExecutionError(ArbyError):
    """Transaction build/submit/track failure."""
    pass


class TransactionTimeoutError(ExecutionError):
    """Waiting for a transaction exceeded the caller's timeout."""

    def __init__(self, tx_hash: str, timeout_seconds: float):
        super().__init__(
            code=ErrorCode.EXEC_TIMEOUT,
            message=f"Transaction {tx_hash} not mined within {timeout_seconds}s",
            details={"tx_hash": tx_hash, "timeout_seconds": timeout_seconds},
        )


class MevShareError(ArbyError):
    """Private order-flow relay failure."""
    pass


class ConfigError(ArbyError):
    """Invalid configuration."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(code=ErrorCode.CONFIG_INVALID, message=message, details=details)


class ValidationError(ArbyError):
    """Input failed validation before any side effect."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(code=ErrorCode.VALIDATION_ERROR, message=message, details=details)
