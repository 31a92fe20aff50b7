"""
strategy/scanner.py - Cross-venue opportunity scanner.

For every ordered pair (A, B) of tracked assets, quotes one unit of A into B
on every venue. The venue giving the most B is the buy side, the one giving
the least is the sell side; the gap, priced in USD, minus a provisional gas
figure is the net profit. Only strictly positive net profits are emitted.
"""

import asyncio
from decimal import Decimal
from itertools import permutations
from typing import List, Optional, Sequence

from core.constants import (
    PROVISIONAL_GAS_COST_USD,
    QUIET_SCAN_INTERVAL_SECONDS,
    SCAN_INTERVAL_SECONDS,
    SCANNER_CONFIDENCE,
)
from core.exceptions import ArbyError
from core.lifecycle import ServiceLifecycle
from core.logging import get_logger
from core.math import normalize_to_decimals
from core.models import ArbitrageOpportunity, Quote, TrackedAsset, make_opportunity_id
from dex.registry import VenueQuoteService
from pricing.oracle import PriceConsensusCache

logger = get_logger(__name__)


class OpportunityScanner:
    """
    Detects two-venue price gaps across all tracked pairs.

    Usage:
        scanner = OpportunityScanner(assets, quotes, prices)
        opportunities = await scanner.scan()
    """

    def __init__(
        self,
        assets: Sequence[TrackedAsset],
        quotes: VenueQuoteService,
        prices: PriceConsensusCache,
        provisional_gas_usd: Decimal = PROVISIONAL_GAS_COST_USD,
        interval_seconds: float = SCAN_INTERVAL_SECONDS,
        quiet_mode: bool = False,
    ):
        self.assets = list(assets)
        self.quotes = quotes
        self.prices = prices
        self.provisional_gas_usd = provisional_gas_usd
        self.interval_seconds = QUIET_SCAN_INTERVAL_SECONDS if quiet_mode else interval_seconds
        self.quiet_mode = quiet_mode

        self.lifecycle = ServiceLifecycle("scanner")
        self._loop_task: Optional[asyncio.Task] = None
        self.scans_completed = 0
        self.last_scan_count = 0

    # =========================================================================
    # SINGLE SCAN
    # =========================================================================

    async def scan(self) -> List[ArbitrageOpportunity]:
        """Scan every ordered pair once. Pair failures are logged and skipped."""
        pairs = list(permutations(self.assets, 2))
        results = await asyncio.gather(
            *[self._scan_pair(a, b) for a, b in pairs],
            return_exceptions=True,
        )

        opportunities: List[ArbitrageOpportunity] = []
        for (a, b), result in zip(pairs, results):
            if isinstance(result, BaseException):
                if not isinstance(result, ArbyError):
                    raise result
                logger.warning(
                    f"Scan of {a.symbol}/{b.symbol} failed",
                    extra={"context": {"pair": f"{a.symbol}/{b.symbol}", "error": str(result)}},
                )
                continue
            if result is not None:
                opportunities.append(result)

        self.scans_completed += 1
        self.last_scan_count = len(opportunities)

        log = logger.info if opportunities and not self.quiet_mode else logger.debug
        log(
            f"Scan found {len(opportunities)} opportunities",
            extra={"context": {"pairs": len(pairs), "found": len(opportunities)}},
        )
        return opportunities

    async def _scan_pair(self, token_a: TrackedAsset, token_b: TrackedAsset) -> Optional[ArbitrageOpportunity]:
        quotes = await self.quotes.get_quotes(token_a, token_b, token_a.one_unit)

        # One quote per venue; fewer than two venues means nothing to compare
        by_venue: dict = {}
        for quote in quotes:
            by_venue.setdefault(quote.venue, quote)
        if len(by_venue) < 2:
            return None

        venue_quotes: List[Quote] = list(by_venue.values())
        buy = max(venue_quotes, key=lambda q: q.amount_out)
        sell = min(venue_quotes, key=lambda q: q.amount_out)
        if buy.amount_out <= sell.amount_out:
            return None

        gap_b = normalize_to_decimals(buy.amount_out - sell.amount_out, token_b.decimals)
        gross_profit_usd = gap_b * await self.prices.price_in_usd(token_b)
        net_profit_usd = gross_profit_usd - self.provisional_gas_usd
        if net_profit_usd <= 0:
            return None

        principal_usd = await self.prices.price_in_usd(token_a)

        opportunity = ArbitrageOpportunity(
            id=make_opportunity_id(token_a.symbol, token_b.symbol, buy.venue, sell.venue),
            source_venue=buy.venue,
            target_venue=sell.venue,
            path=(token_a, token_b, token_a),
            gross_profit_usd=gross_profit_usd,
            principal_usd=principal_usd,
            gas_cost_usd=self.provisional_gas_usd,
            net_profit_usd=net_profit_usd,
            confidence=SCANNER_CONFIDENCE,
        )
        logger.debug(
            f"Opportunity {opportunity.id}: net ${net_profit_usd:.4f}",
            extra={"context": opportunity.to_dict()},
        )
        return opportunity

    # =========================================================================
    # CONTINUOUS SCANNING
    # =========================================================================

    @property
    def is_scanning(self) -> bool:
        return self.lifecycle.is_running

    async def start_continuous_scanning(self) -> None:
        """Start the background scan loop. No-op if already running."""
        if not self.lifecycle.start():
            return
        self._loop_task = asyncio.create_task(self._scan_loop(), name="scanner-loop")
        logger.info(
            "Continuous scanning started",
            extra={"context": {"interval_seconds": self.interval_seconds}},
        )

    async def stop_continuous_scanning(self) -> None:
        """Stop the background scan loop and wait for it to exit. No-op if stopped."""
        if not self.lifecycle.stop():
            return
        if self._loop_task is not None:
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None
        logger.info("Continuous scanning stopped")

    async def _scan_loop(self) -> None:
        while not self.lifecycle.stop_requested:
            try:
                await self.scan()
            except Exception as e:
                logger.error(f"Scan failed: {e}", exc_info=True)

            if await self.lifecycle.sleep(self.interval_seconds):
                break
