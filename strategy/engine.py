"""
strategy/engine.py - Opportunity selection and bounded path search.

Two jobs:
1. evaluate_opportunities: threshold filter, path-length gas re-costing,
   second filter, pick the single best by net profit
2. find_optimal_path / calculate_expected_profit: simulate direct,
   one-intermediate and two-intermediate routes hop by hop on the best
   venue per hop and keep the most profitable

Ties in net profit are broken by opportunity id (lexicographically smallest
wins) so selection never depends on input order.
"""

import asyncio
from dataclasses import replace
from decimal import Decimal
from itertools import combinations
from typing import Dict, List, Optional, Sequence

from core.constants import (
    PATH_LENGTH_GAS_FALLBACK_USD,
    PATH_LENGTH_GAS_USD,
    ROUTE_BASE_GAS_USD,
    ROUTE_GAS_MULTIPLIER,
    ROUTE_LENGTH_SURCHARGE_FALLBACK_USD,
    ROUTE_LENGTH_SURCHARGE_USD,
    VENUE_GAS_USD,
    VenueKind,
)
from core.exceptions import ErrorCode, StrategyError, ValidationError
from core.logging import get_logger, log_opportunity
from core.math import denormalize_from_decimals, normalize_to_decimals
from core.models import ArbitrageOpportunity, TrackedAsset
from dex.registry import VenueQuoteService
from pricing.oracle import PriceConsensusCache

logger = get_logger(__name__)


# =============================================================================
# COST MODELS
# =============================================================================

def path_gas_cost_usd(path_length: int) -> Decimal:
    """
    Gas estimate by number of tokens in the path.

    3 (A->B->A) < 4 (one intermediate) < anything longer.
    """
    return PATH_LENGTH_GAS_USD.get(path_length, PATH_LENGTH_GAS_FALLBACK_USD)


def route_gas_cost_usd(path_length: int, venues: Sequence[VenueKind]) -> Decimal:
    """Base cost + path-length surcharge + per-venue cost, scaled by the multiplier."""
    surcharge = ROUTE_LENGTH_SURCHARGE_USD.get(path_length, ROUTE_LENGTH_SURCHARGE_FALLBACK_USD)
    venue_cost = sum((VENUE_GAS_USD.get(v, Decimal("0")) for v in venues), Decimal("0"))
    return (ROUTE_BASE_GAS_USD + surcharge + venue_cost) * ROUTE_GAS_MULTIPLIER


def selection_key(opportunity: ArbitrageOpportunity) -> tuple:
    """Sort key: highest net profit first, then smallest id."""
    return (-opportunity.net_profit_usd, opportunity.id)


# =============================================================================
# ENGINE
# =============================================================================

class StrategyEngine:
    """Ranks scanner output and searches multi-hop routes."""

    def __init__(
        self,
        assets: Sequence[TrackedAsset],
        quotes: VenueQuoteService,
        prices: PriceConsensusCache,
        min_profit_threshold: Decimal,
        max_hops: int = 3,
    ):
        self.assets = list(assets)
        self.quotes = quotes
        self.prices = prices
        self.min_profit_threshold = min_profit_threshold
        self.max_hops = max_hops

    # -------------------------------------------------------------------------
    # Selection
    # -------------------------------------------------------------------------

    def evaluate_opportunities(
        self,
        opportunities: Sequence[ArbitrageOpportunity],
    ) -> Optional[ArbitrageOpportunity]:
        """
        Best opportunity after re-costing gas, or None.

        Anything with net profit below min_profit_threshold, before or after
        the gas re-cost, is dropped.
        """
        unique: Dict[str, ArbitrageOpportunity] = {}
        for opp in opportunities:
            current = unique.get(opp.id)
            if current is None or selection_key(opp) < selection_key(current):
                unique[opp.id] = opp

        survivors: List[ArbitrageOpportunity] = []
        for opp in unique.values():
            if opp.net_profit_usd < self.min_profit_threshold:
                continue

            gas_cost = path_gas_cost_usd(len(opp.path))
            recosted = replace(
                opp,
                gas_cost_usd=gas_cost,
                net_profit_usd=opp.gross_profit_usd - gas_cost,
            )
            if recosted.net_profit_usd < self.min_profit_threshold:
                continue
            survivors.append(recosted)

        if not survivors:
            logger.debug(
                "No opportunity above threshold",
                extra={"context": {"candidates": len(opportunities), "threshold": str(self.min_profit_threshold)}},
            )
            return None

        best = min(survivors, key=selection_key)
        log_opportunity(
            logger,
            best.id,
            best.net_profit_usd,
            "SELECTED",
            candidates=len(opportunities),
            survivors=len(survivors),
        )
        return best

    # -------------------------------------------------------------------------
    # Path search
    # -------------------------------------------------------------------------

    def candidate_paths(self, token_from: TrackedAsset, token_to: TrackedAsset) -> List[List[TrackedAsset]]:
        """
        Direct, one-intermediate and two-intermediate paths, capped by max_hops.

        Two-intermediate paths visit each unordered pair of other assets once,
        in tracked order.
        """
        others = [a for a in self.assets if a.key not in (token_from.key, token_to.key)]

        paths: List[List[TrackedAsset]] = [[token_from, token_to]]
        if self.max_hops >= 2:
            paths.extend([token_from, mid, token_to] for mid in others)
        if self.max_hops >= 3:
            paths.extend([token_from, x, y, token_to] for x, y in combinations(others, 2))
        return paths

    async def find_optimal_path(
        self,
        token_from: TrackedAsset,
        token_to: TrackedAsset,
        amount: Decimal = Decimal("1"),
    ) -> List[TrackedAsset]:
        """
        Most profitable candidate path for trading `amount` of token_from.

        Raises:
            StrategyError: If no candidate path has positive expected profit
        """
        paths = self.candidate_paths(token_from, token_to)
        profits = await asyncio.gather(
            *[self.calculate_expected_profit(path, amount) for path in paths]
        )

        best_path: Optional[List[TrackedAsset]] = None
        best_profit = Decimal("0")
        for path, profit in zip(paths, profits):
            if profit > best_profit:
                best_path, best_profit = path, profit

        if best_path is None:
            raise StrategyError(
                code=ErrorCode.STRATEGY_NO_PROFITABLE_PATH,
                message=f"No profitable path found from {token_from.symbol} to {token_to.symbol}",
                details={"candidates": len(paths)},
            )

        logger.info(
            f"Optimal path {'->'.join(a.symbol for a in best_path)}",
            extra={"context": {"expected_profit_usd": str(best_profit)}},
        )
        return best_path

    async def calculate_expected_profit(
        self,
        path: Sequence[TrackedAsset],
        amount: Decimal,
    ) -> Decimal:
        """
        Net USD profit of trading `amount` (whole units of path[0]) along path.

        Never negative: unprofitable routes, and routes where a hop has no
        quote, return exactly 0.

        Raises:
            ValidationError: If path has fewer than two assets
        """
        if len(path) < 2:
            raise ValidationError(
                "Path must contain at least two assets",
                details={"path": [a.symbol for a in path]},
            )

        start = path[0]
        end = path[-1]
        amount_in = denormalize_from_decimals(amount, start.decimals)
        if amount_in <= 0:
            return Decimal("0")

        current = amount_in
        venues: List[VenueKind] = []
        for token_in, token_out in zip(path, path[1:]):
            quote = await self.quotes.find_best_quote(token_in, token_out, current)
            if quote is None:
                return Decimal("0")
            current = quote.amount_out
            venues.append(quote.venue)

        if start.key == end.key:
            gained = normalize_to_decimals(current - amount_in, start.decimals)
            profit_usd = gained * await self.prices.price_in_usd(start)
        else:
            value_in = normalize_to_decimals(amount_in, start.decimals) * await self.prices.price_in_usd(start)
            value_out = normalize_to_decimals(current, end.decimals) * await self.prices.price_in_usd(end)
            profit_usd = value_out - value_in

        net = profit_usd - route_gas_cost_usd(len(path), venues)
        return max(net, Decimal("0"))
