"""
dex/registry.py - Venue registry and quote fan-out.

Venues are a closed set (VenueKind). The registry maps each enabled kind to
its adapter; adding a venue means adding a VenueKind member and a factory
entry in _ADAPTER_FACTORIES.

VenueQuoteService is what the scanner, the strategy engine and the
venue-derived price sources talk to.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Protocol

from chains.providers import RPCProvider
from config import VenueConfig
from core.constants import VenueKind
from core.exceptions import ArbyError, ErrorCode, QuoteError
from core.logging import get_logger
from core.models import Quote, TrackedAsset
from dex.adapters.curve import CurveAdapter, CurvePool
from dex.adapters.uniswap_v2 import UniswapV2Adapter
from dex.adapters.uniswap_v3 import UniswapV3Adapter

logger = get_logger(__name__)


class VenueAdapter(Protocol):
    """Uniform quote capability every venue adapter provides."""

    venue: VenueKind

    async def quote(
        self,
        token_in: TrackedAsset,
        token_out: TrackedAsset,
        amount_in: int,
    ) -> Optional[Quote]: ...

    async def pool_for(self, token_a: TrackedAsset, token_b: TrackedAsset) -> Optional[str]: ...

    async def reserves(self, pool_address: str) -> List[int]: ...


def _v2_factory(kind: VenueKind) -> Callable[[RPCProvider, VenueConfig], VenueAdapter]:
    def build(provider: RPCProvider, cfg: VenueConfig) -> VenueAdapter:
        return UniswapV2Adapter(provider, kind, cfg.router, cfg.factory)
    return build


def _v3_factory(provider: RPCProvider, cfg: VenueConfig) -> VenueAdapter:
    return UniswapV3Adapter(provider, cfg.quoter, cfg.factory)


def _curve_factory(provider: RPCProvider, cfg: VenueConfig) -> VenueAdapter:
    pools = [CurvePool(address=p.address, coins=tuple(p.coins)) for p in cfg.pools]
    return CurveAdapter(provider, pools)


_ADAPTER_FACTORIES: Dict[VenueKind, Callable[[RPCProvider, VenueConfig], VenueAdapter]] = {
    VenueKind.UNISWAP_V2: _v2_factory(VenueKind.UNISWAP_V2),
    VenueKind.SUSHISWAP: _v2_factory(VenueKind.SUSHISWAP),
    VenueKind.UNISWAP_V3: _v3_factory,
    VenueKind.CURVE: _curve_factory,
}


class VenueRegistry:
    """Mapping VenueKind -> adapter, iterated in registration order."""

    def __init__(self) -> None:
        self._adapters: Dict[VenueKind, VenueAdapter] = {}

    def register(self, kind: VenueKind, adapter: VenueAdapter) -> None:
        self._adapters[kind] = adapter

    def unregister(self, kind: VenueKind) -> None:
        self._adapters.pop(kind, None)

    def get(self, kind: VenueKind) -> Optional[VenueAdapter]:
        return self._adapters.get(kind)

    @property
    def kinds(self) -> List[VenueKind]:
        return list(self._adapters.keys())

    def items(self) -> List[tuple[VenueKind, VenueAdapter]]:
        return list(self._adapters.items())

    def __len__(self) -> int:
        return len(self._adapters)

    @classmethod
    def from_config(cls, provider: RPCProvider, venues: List[VenueConfig]) -> "VenueRegistry":
        """Build adapters for every enabled venue in config."""
        registry = cls()
        for cfg in venues:
            if not cfg.enabled:
                continue
            registry.register(cfg.kind, _ADAPTER_FACTORIES[cfg.kind](provider, cfg))
        logger.info(
            f"Venue registry built with {len(registry)} venues",
            extra={"context": {"venues": [k.value for k in registry.kinds]}},
        )
        return registry


class VenueQuoteService:
    """
    Quote fan-out across all registered venues.

    A failing venue is logged and excluded; it never fails the whole call.
    """

    def __init__(self, registry: VenueRegistry):
        self.registry = registry

    @property
    def venues(self) -> List[VenueKind]:
        return self.registry.kinds

    async def _safe_quote(
        self,
        kind: VenueKind,
        adapter: VenueAdapter,
        token_in: TrackedAsset,
        token_out: TrackedAsset,
        amount_in: int,
    ) -> Optional[Quote]:
        try:
            return await adapter.quote(token_in, token_out, amount_in)
        except ArbyError as e:
            logger.warning(
                f"{kind.value} quote failed {token_in.symbol}->{token_out.symbol}",
                extra={"context": {"venue": kind.value, "error": str(e)}},
            )
            return None
        except Exception as e:
            logger.error(
                f"{kind.value} quote raised unexpectedly {token_in.symbol}->{token_out.symbol}: {e}",
                extra={"context": {"venue": kind.value, "error_type": type(e).__name__}},
                exc_info=True,
            )
            return None

    async def get_quotes(
        self,
        token_in: TrackedAsset,
        token_out: TrackedAsset,
        amount_in: int,
    ) -> List[Quote]:
        """One quote per venue that can fill the trade (possibly empty)."""
        results = await asyncio.gather(*[
            self._safe_quote(kind, adapter, token_in, token_out, amount_in)
            for kind, adapter in self.registry.items()
        ])
        return [q for q in results if q is not None]

    async def quote_on(
        self,
        kind: VenueKind,
        token_in: TrackedAsset,
        token_out: TrackedAsset,
        amount_in: int,
    ) -> Optional[Quote]:
        """
        Quote on one venue.

        Raises:
            QuoteError: If the venue is not registered or the call fails
        """
        adapter = self.registry.get(kind)
        if adapter is None:
            raise QuoteError(
                code=ErrorCode.QUOTE_UNSUPPORTED_VENUE,
                message=f"Venue {kind.value} is not registered",
            )
        return await adapter.quote(token_in, token_out, amount_in)

    async def find_best_quote(
        self,
        token_in: TrackedAsset,
        token_out: TrackedAsset,
        amount_in: int,
    ) -> Optional[Quote]:
        """Highest-output quote across venues, or None if nobody quotes."""
        quotes = await self.get_quotes(token_in, token_out, amount_in)
        return max(quotes, key=lambda q: q.amount_out, default=None)
