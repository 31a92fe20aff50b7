# PATH: core/models.py
"""
Data models for ARBY-MEV.

Assets, price samples, quotes, opportunities and transactions. Everything
that flows between components is a dataclass; money is Decimal, on-chain
amounts are int.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from core.constants import PriceSourceKind, VenueKind
from core.exceptions import ValidationError
from core.time import now_ms


# ============================================================================
# IDENTIFIERS
# ============================================================================

def make_opportunity_id(
    symbol_a: str,
    symbol_b: str,
    buy_venue: VenueKind,
    sell_venue: VenueKind,
) -> str:
    """
    Deterministic opportunity ID.

    Format: {symA}_{symB}_{buyVenue}_{sellVenue}
    Example: WETH_USDC_uniswap_v2_sushiswap

    The same structural opportunity always maps to the same ID, so repeated
    detections collapse downstream.
    """
    return f"{symbol_a}_{symbol_b}_{buy_venue.value}_{sell_venue.value}"


# ============================================================================
# ASSETS AND PRICES
# ============================================================================

@dataclass(frozen=True)
class TrackedAsset:
    """Token tracked by the bot. Registered once at startup."""
    address: str
    symbol: str
    decimals: int

    @property
    def key(self) -> str:
        return self.address.lower()

    @property
    def one_unit(self) -> int:
        """One whole token in its smallest unit."""
        return 10 ** self.decimals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "symbol": self.symbol,
            "decimals": self.decimals,
        }


@dataclass(frozen=True)
class PriceSourceId:
    """Identity of a price source (venue-derived or external API)."""
    kind: PriceSourceKind
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


@dataclass(frozen=True)
class PriceSample:
    """One source's USD price for an asset in one refresh round."""
    source: PriceSourceId
    price_usd: Decimal


@dataclass(frozen=True)
class ConsensusPrice:
    """Aggregated price for one asset."""
    asset: TrackedAsset
    price_usd: Decimal
    price_reference: Optional[Decimal]
    accepted: Tuple[PriceSample, ...] = ()
    last_refresh_ms: int = 0

    def __post_init__(self):
        if self.price_usd < 0:
            raise ValidationError(
                f"Negative USD price for {self.asset.symbol}",
                details={"price_usd": str(self.price_usd)},
            )
        if self.price_reference is not None and self.price_reference < 0:
            raise ValidationError(
                f"Negative reference price for {self.asset.symbol}",
                details={"price_reference": str(self.price_reference)},
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset": self.asset.symbol,
            "price_usd": str(self.price_usd),
            "price_reference": str(self.price_reference) if self.price_reference is not None else None,
            "sources": [str(s.source) for s in self.accepted],
            "last_refresh_ms": self.last_refresh_ms,
        }


# ============================================================================
# QUOTES
# ============================================================================

@dataclass(frozen=True)
class Quote:
    """Result of one venue quote call."""
    token_in: TrackedAsset
    token_out: TrackedAsset
    amount_in: int
    amount_out: int
    venue: VenueKind
    path: Tuple[str, ...] = ()
    pools: Tuple[str, ...] = ()
    timestamp_ms: int = field(default_factory=now_ms)

    @property
    def effective_price(self) -> Decimal:
        """Output per input in whole-token units."""
        if self.amount_in == 0:
            return Decimal("0")
        in_norm = Decimal(self.amount_in) / Decimal(self.token_in.one_unit)
        out_norm = Decimal(self.amount_out) / Decimal(self.token_out.one_unit)
        return out_norm / in_norm

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue.value,
            "token_in": self.token_in.symbol,
            "token_out": self.token_out.symbol,
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "pools": list(self.pools),
            "timestamp_ms": self.timestamp_ms,
        }


# ============================================================================
# OPPORTUNITIES
# ============================================================================

@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    Candidate profit event.

    source_venue is where B is bought cheapest (highest output for one A),
    target_venue where it is worth least. All USD figures are Decimal.
    """
    id: str
    source_venue: VenueKind
    target_venue: VenueKind
    path: Tuple[TrackedAsset, ...]
    gross_profit_usd: Decimal
    principal_usd: Decimal
    gas_cost_usd: Decimal
    net_profit_usd: Decimal
    confidence: float
    discovered_at_ms: int = field(default_factory=now_ms)

    @property
    def path_symbols(self) -> List[str]:
        return [asset.symbol for asset in self.path]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_venue": self.source_venue.value,
            "target_venue": self.target_venue.value,
            "path": self.path_symbols,
            "gross_profit_usd": str(self.gross_profit_usd),
            "principal_usd": str(self.principal_usd),
            "gas_cost_usd": str(self.gas_cost_usd),
            "net_profit_usd": str(self.net_profit_usd),
            "confidence": self.confidence,
            "discovered_at_ms": self.discovered_at_ms,
        }


# ============================================================================
# TRANSACTIONS
# ============================================================================

@dataclass(frozen=True)
class ArbitrageTransaction:
    """
    Built, not-yet-submitted transaction.

    A degraded transaction carries a placeholder payload and must never be
    submitted; the executor refuses it.
    """
    opportunity_id: str
    request: Dict[str, Any]
    payload: str
    gas_limit: int
    gas_price_wei: int
    total_cost_wei: int
    expected_profit_usd: Decimal
    token_path: Tuple[str, ...]
    venue_path: Tuple[str, ...]
    use_private_channel: bool = False
    degraded: bool = False
    degraded_reason: Optional[str] = None

    @property
    def to_address(self) -> str:
        return self.request.get("to", "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opportunity_id": self.opportunity_id,
            "to": self.to_address,
            "gas_limit": self.gas_limit,
            "gas_price_wei": self.gas_price_wei,
            "total_cost_wei": self.total_cost_wei,
            "expected_profit_usd": str(self.expected_profit_usd),
            "token_path": list(self.token_path),
            "venue_path": list(self.venue_path),
            "use_private_channel": self.use_private_channel,
            "degraded": self.degraded,
            "degraded_reason": self.degraded_reason,
        }


@dataclass(frozen=True)
class TransactionResult:
    """Snapshot of a transaction's on-chain status, rebuilt on each poll."""
    tx_hash: str
    state: str
    success: bool = False
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    actual_cost_wei: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.block_number is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "state": self.state,
            "success": self.success,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "actual_cost_wei": self.actual_cost_wei,
            "error": self.error,
        }
