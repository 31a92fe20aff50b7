"""
tests/unit/test_registry.py - Venue registry and quote fan-out tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from chains.providers import RPCProvider, RPCResponse
from config import CurvePoolConfig, VenueConfig
from core.constants import VenueKind
from core.exceptions import ErrorCode, QuoteError
from dex.adapters.curve import CurveAdapter, CurvePool
from dex.adapters.uniswap_v2 import UniswapV2Adapter
from dex.registry import VenueQuoteService, VenueRegistry


def _garbled_curve(*coins) -> CurveAdapter:
    """Real Curve adapter on a node that answers every call with two bytes."""
    provider = MagicMock()
    provider.eth_call = AsyncMock(return_value=RPCResponse(result="0x1234", latency_ms=1, endpoint_used="stub"))
    return CurveAdapter(provider, [CurvePool(address="0x" + "33" * 20, coins=tuple(c.address for c in coins))])


@pytest.fixture
def registry(make_venue):
    registry = VenueRegistry()
    registry.register(VenueKind.UNISWAP_V2, make_venue(VenueKind.UNISWAP_V2, {("WETH", "USDC"): 1000}))
    registry.register(VenueKind.SUSHISWAP, make_venue(VenueKind.SUSHISWAP, {("WETH", "USDC"): 990}))
    return registry


class TestVenueRegistry:
    def test_registration_order_kept(self, registry):
        assert registry.kinds == [VenueKind.UNISWAP_V2, VenueKind.SUSHISWAP]
        assert len(registry) == 2

    def test_unregister(self, registry):
        registry.unregister(VenueKind.SUSHISWAP)
        assert registry.get(VenueKind.SUSHISWAP) is None
        registry.unregister(VenueKind.CURVE)
        assert len(registry) == 1

    def test_from_config_skips_disabled(self):
        provider = RPCProvider(chain_id=1, rpc_urls=["http://localhost:8545"])
        registry = VenueRegistry.from_config(provider, [
            VenueConfig(kind=VenueKind.SUSHISWAP, router="0x" + "11" * 20, factory="0x" + "22" * 20),
            VenueConfig(kind=VenueKind.UNISWAP_V3, enabled=False),
            VenueConfig(
                kind=VenueKind.CURVE,
                pools=[CurvePoolConfig(address="0x" + "33" * 20, coins=["0x" + "44" * 20, "0x" + "55" * 20])],
            ),
        ])
        assert registry.kinds == [VenueKind.SUSHISWAP, VenueKind.CURVE]
        assert isinstance(registry.get(VenueKind.SUSHISWAP), UniswapV2Adapter)
        assert registry.get(VenueKind.SUSHISWAP).venue == VenueKind.SUSHISWAP
        assert isinstance(registry.get(VenueKind.CURVE), CurveAdapter)


class TestVenueQuoteService:
    @pytest.mark.asyncio
    async def test_one_quote_per_venue(self, registry, weth, usdc):
        quotes = await VenueQuoteService(registry).get_quotes(weth, usdc, weth.one_unit)
        assert [q.venue for q in quotes] == [VenueKind.UNISWAP_V2, VenueKind.SUSHISWAP]
        assert quotes[0].amount_out == 1000 * usdc.one_unit

    @pytest.mark.asyncio
    async def test_missing_pair_is_excluded(self, registry, weth, dai):
        assert await VenueQuoteService(registry).get_quotes(weth, dai, weth.one_unit) == []

    @pytest.mark.asyncio
    async def test_failing_venue_is_isolated(self, registry, make_venue, weth, usdc):
        broken = QuoteError(code=ErrorCode.QUOTE_REVERT, message="execution reverted")
        registry.register(VenueKind.CURVE, make_venue(VenueKind.CURVE, {("WETH", "USDC"): broken}))

        quotes = await VenueQuoteService(registry).get_quotes(weth, usdc, weth.one_unit)
        assert {q.venue for q in quotes} == {VenueKind.UNISWAP_V2, VenueKind.SUSHISWAP}

    @pytest.mark.asyncio
    async def test_malformed_venue_data_is_isolated(self, registry, weth, usdc):
        registry.register(VenueKind.CURVE, _garbled_curve(weth, usdc))

        quotes = await VenueQuoteService(registry).get_quotes(weth, usdc, weth.one_unit)
        assert [q.venue for q in quotes] == [VenueKind.UNISWAP_V2, VenueKind.SUSHISWAP]

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_isolated(self, registry, make_venue, weth, usdc):
        registry.register(VenueKind.CURVE, make_venue(VenueKind.CURVE, {("WETH", "USDC"): RuntimeError("boom")}))

        service = VenueQuoteService(registry)
        assert len(await service.get_quotes(weth, usdc, weth.one_unit)) == 2
        assert (await service.find_best_quote(weth, usdc, weth.one_unit)).venue == VenueKind.UNISWAP_V2

    @pytest.mark.asyncio
    async def test_find_best_quote(self, registry, weth, usdc):
        best = await VenueQuoteService(registry).find_best_quote(weth, usdc, weth.one_unit)
        assert best.venue == VenueKind.UNISWAP_V2

    @pytest.mark.asyncio
    async def test_find_best_quote_none(self, registry, weth, dai):
        assert await VenueQuoteService(registry).find_best_quote(weth, dai, weth.one_unit) is None

    @pytest.mark.asyncio
    async def test_quote_on_unregistered_venue(self, registry, weth, usdc):
        with pytest.raises(QuoteError) as exc_info:
            await VenueQuoteService(registry).quote_on(VenueKind.CURVE, weth, usdc, weth.one_unit)
        assert exc_info.value.code == ErrorCode.QUOTE_UNSUPPORTED_VENUE

    @pytest.mark.asyncio
    async def test_quote_on_propagates_failure(self, registry, make_venue, weth, usdc):
        broken = QuoteError(code=ErrorCode.QUOTE_TIMEOUT, message="slow")
        registry.register(VenueKind.CURVE, make_venue(VenueKind.CURVE, {("WETH", "USDC"): broken}))
        with pytest.raises(QuoteError):
            await VenueQuoteService(registry).quote_on(VenueKind.CURVE, weth, usdc, weth.one_unit)
