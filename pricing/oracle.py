"""
pricing/oracle.py - Price consensus cache.

Holds one ConsensusPrice per tracked asset, computed from every active
source with outlier rejection (see pricing/consensus.py).

Locking:
- the price map sits behind a reader/writer lock; reads share it, the map
  update at the end of a refresh takes it exclusively
- refreshes are single-flight; source I/O happens outside the map lock
- a read that finds its price stale refreshes synchronously first
"""

import asyncio
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Union

from core.constants import (
    DEFAULT_MAX_PRICE_DEVIATION_PCT,
    DEFAULT_MIN_PRICE_SOURCES,
    DEFAULT_PRICE_FRESHNESS_SECONDS,
    NUMERAIRE_REFERENCE_PRICE,
)
from core.exceptions import ArbyError, ErrorCode, PriceError
from core.locks import ReadWriteLock
from core.logging import get_logger
from core.models import ConsensusPrice, PriceSample, PriceSourceId, TrackedAsset
from core.time import is_fresh, now_ms
from pricing.consensus import ConsensusResult, compute_consensus
from pricing.sources import PriceSource

logger = get_logger(__name__)

AssetRef = Union[TrackedAsset, str]


class PriceConsensusCache:
    """
    Consensus USD and reference-asset prices for the tracked assets.

    Usage:
        cache = PriceConsensusCache(assets, numeraire=weth, sources=[...])
        await cache.refresh_all()
        usd = await cache.price_in_usd(weth)
    """

    def __init__(
        self,
        assets: Sequence[TrackedAsset],
        numeraire: TrackedAsset,
        sources: Optional[Sequence[PriceSource]] = None,
        freshness_seconds: float = DEFAULT_PRICE_FRESHNESS_SECONDS,
        max_deviation_pct: Decimal = DEFAULT_MAX_PRICE_DEVIATION_PCT,
        min_sources: int = DEFAULT_MIN_PRICE_SOURCES,
        enforce_min_sources: bool = True,
    ):
        self._assets: Dict[str, TrackedAsset] = {a.key: a for a in assets}
        self._by_symbol: Dict[str, TrackedAsset] = {a.symbol: a for a in assets}
        if numeraire.key not in self._assets:
            self._assets[numeraire.key] = numeraire
            self._by_symbol[numeraire.symbol] = numeraire
        self.numeraire = numeraire

        self.freshness_seconds = freshness_seconds
        self.max_deviation_pct = max_deviation_pct
        self.min_sources = min_sources
        self.enforce_min_sources = enforce_min_sources

        self._sources: List[PriceSource] = []
        for source in sources or []:
            self.add_source(source)

        self._prices: Dict[str, ConsensusPrice] = {}
        self._lock = ReadWriteLock()
        self._refresh_lock = asyncio.Lock()
        self.refresh_count = 0

    # =========================================================================
    # SOURCES
    # =========================================================================

    @property
    def sources(self) -> List[PriceSourceId]:
        return [s.source_id for s in self._sources]

    def add_source(self, source: PriceSource) -> bool:
        """Add a source. Returns False if one with the same id is present."""
        if source.source_id in self.sources:
            return False
        self._sources.append(source)
        logger.info(f"Price source added: {source.source_id}")
        return True

    def remove_source(self, source_id: PriceSourceId) -> bool:
        """Remove a source by id. Returns False if it was not present."""
        before = len(self._sources)
        self._sources = [s for s in self._sources if s.source_id != source_id]
        removed = len(self._sources) < before
        if removed:
            logger.info(f"Price source removed: {source_id}")
        return removed

    # =========================================================================
    # READS
    # =========================================================================

    def _resolve(self, token: AssetRef) -> TrackedAsset:
        if isinstance(token, TrackedAsset):
            asset = self._assets.get(token.key)
        else:
            asset = self._assets.get(token.lower()) or self._by_symbol.get(token)
        if asset is None:
            raise PriceError(
                code=ErrorCode.PRICE_UNKNOWN_ASSET,
                message=f"Asset is not tracked: {token}",
            )
        return asset

    def _is_fresh(self, entry: Optional[ConsensusPrice]) -> bool:
        return entry is not None and is_fresh(entry.last_refresh_ms, self.freshness_seconds)

    async def _entry(self, token: AssetRef) -> ConsensusPrice:
        asset = self._resolve(token)

        async with self._lock.read():
            entry = self._prices.get(asset.key)

        if not self._is_fresh(entry):
            await self._refresh_if_stale(asset)
            async with self._lock.read():
                entry = self._prices.get(asset.key)

        if entry is None or not self._is_fresh(entry):
            raise PriceError(
                code=ErrorCode.PRICE_UNAVAILABLE,
                message=f"No fresh price for {asset.symbol}",
                details={"last_refresh_ms": entry.last_refresh_ms if entry else None},
            )
        return entry

    async def get_price(self, token: AssetRef) -> ConsensusPrice:
        """Full consensus record for an asset (refreshing if stale)."""
        return await self._entry(token)

    async def price_in_usd(self, token: AssetRef) -> Decimal:
        return (await self._entry(token)).price_usd

    async def price_in_reference(self, token: AssetRef) -> Decimal:
        """Price denominated in the numeraire asset (numeraire itself is 1)."""
        entry = await self._entry(token)
        if entry.price_reference is None:
            raise PriceError(
                code=ErrorCode.PRICE_UNAVAILABLE,
                message=f"No {self.numeraire.symbol} price to denominate {entry.asset.symbol}",
            )
        return entry.price_reference

    async def price_of(self, base: AssetRef, quote: AssetRef) -> Decimal:
        """
        Units of quote per one base, from the two USD prices.

        Raises:
            PriceError: If the quote asset's USD price is not positive
        """
        base_usd = await self.price_in_usd(base)
        quote_usd = await self.price_in_usd(quote)
        if quote_usd <= 0:
            raise PriceError(
                code=ErrorCode.PRICE_ZERO_DENOMINATOR,
                message=f"Cannot price against {quote}: USD price is {quote_usd}",
            )
        return base_usd / quote_usd

    async def snapshot(self) -> Dict[str, ConsensusPrice]:
        """Current map by symbol, without triggering a refresh."""
        async with self._lock.read():
            return {entry.asset.symbol: entry for entry in self._prices.values()}

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def refresh_all(self) -> None:
        """Recompute every tracked asset's consensus price."""
        async with self._refresh_lock:
            await self._refresh_locked()

    async def _refresh_if_stale(self, asset: TrackedAsset) -> None:
        async with self._refresh_lock:
            async with self._lock.read():
                entry = self._prices.get(asset.key)
            # Another reader may have refreshed while we queued
            if self._is_fresh(entry):
                return
            await self._refresh_locked()

    async def _collect_samples(self, asset: TrackedAsset) -> List[PriceSample]:
        sources = list(self._sources)
        results = await asyncio.gather(
            *[source.fetch_price_usd(asset) for source in sources],
            return_exceptions=True,
        )

        samples: List[PriceSample] = []
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                error_text = str(result) if isinstance(result, ArbyError) else repr(result)
                logger.warning(
                    f"Price source {source.source_id} failed for {asset.symbol}",
                    extra={"context": {"source": str(source.source_id), "error": error_text}},
                )
                continue
            if result is None or result <= 0:
                continue
            samples.append(PriceSample(source=source.source_id, price_usd=result))
        return samples

    async def _compute(self, asset: TrackedAsset) -> Optional[ConsensusResult]:
        samples = await self._collect_samples(asset)

        if not samples:
            logger.warning(
                f"No price sources returned data for {asset.symbol}; keeping previous price",
                extra={"context": {"asset": asset.symbol, "sources": len(self._sources)}},
            )
            return None

        if len(samples) < self.min_sources:
            context = {"asset": asset.symbol, "samples": len(samples), "min_sources": self.min_sources}
            if self.enforce_min_sources:
                logger.warning(
                    f"Too few price sources for {asset.symbol}; keeping previous price",
                    extra={"context": context},
                )
                return None
            logger.warning(f"Too few price sources for {asset.symbol}", extra={"context": context})

        result = compute_consensus(samples, self.max_deviation_pct)
        if result.rejected:
            logger.info(
                f"Rejected {len(result.rejected)} outlier price(s) for {asset.symbol}",
                extra={"context": {
                    "asset": asset.symbol,
                    "median": str(result.median),
                    "rejected": {str(s.source): str(s.price_usd) for s in result.rejected},
                }},
            )
        return result

    async def _refresh_locked(self) -> None:
        assets = list(self._assets.values())
        results = await asyncio.gather(*[self._compute(asset) for asset in assets])
        computed = {asset.key: result for asset, result in zip(assets, results) if result is not None}
        timestamp = now_ms()

        async with self._lock.write():
            # Numeraire first so every other asset divides by this round's value
            numeraire_result = computed.get(self.numeraire.key)
            if numeraire_result is not None:
                numeraire_usd: Optional[Decimal] = numeraire_result.price
            else:
                previous = self._prices.get(self.numeraire.key)
                numeraire_usd = previous.price_usd if previous else None

            for asset in assets:
                result = computed.get(asset.key)
                if result is None:
                    continue

                previous = self._prices.get(asset.key)
                # Strictly after the previous stamp even if the clock stalls or steps back
                refreshed_at = max(timestamp, previous.last_refresh_ms + 1) if previous else timestamp

                if asset.key == self.numeraire.key:
                    reference: Optional[Decimal] = NUMERAIRE_REFERENCE_PRICE
                elif numeraire_usd is not None and numeraire_usd > 0:
                    reference = result.price / numeraire_usd
                else:
                    reference = None

                self._prices[asset.key] = ConsensusPrice(
                    asset=asset,
                    price_usd=result.price,
                    price_reference=reference,
                    accepted=result.accepted,
                    last_refresh_ms=refreshed_at,
                )

        self.refresh_count += 1
        logger.debug(
            "Prices refreshed",
            extra={"context": {"updated": len(computed), "tracked": len(assets)}},
        )
