# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for ARBY-MEV tests.

Fixtures here build in-memory venues and price sources so no test touches
the network.
"""

import sys
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.constants import PriceSourceKind, VenueKind  # noqa: E402
from core.models import PriceSourceId, Quote, TrackedAsset  # noqa: E402


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


# =============================================================================
# ASSETS
# =============================================================================

WETH = TrackedAsset("0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", "WETH", 18)
USDC = TrackedAsset("0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", "USDC", 6)
DAI = TrackedAsset("0x6B175474E89094C44Da98b954EedeAC495271d0F", "DAI", 18)

WALLET = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"
# Well-known development key for WALLET (public test mnemonic, account 0)
WALLET_KEY = "0x4f3edf983ac636a65a842ce7c78d9aa706d3b113bce9c46f30d7d21715b23b1d"


@pytest.fixture
def weth() -> TrackedAsset:
    return WETH


@pytest.fixture
def usdc() -> TrackedAsset:
    return USDC


@pytest.fixture
def dai() -> TrackedAsset:
    return DAI


@pytest.fixture
def assets() -> List[TrackedAsset]:
    return [WETH, USDC, DAI]


# =============================================================================
# FAKE VENUES AND PRICE SOURCES
# =============================================================================

class FakeVenue:
    """
    Venue quoting from a fixed whole-token rate table.

    rates[(in_symbol, out_symbol)] = output per one whole input token.
    Pairs missing from the table get no quote. A pair mapped to an
    Exception instance raises it.
    """

    def __init__(self, venue: VenueKind, rates: Dict[Tuple[str, str], object]):
        self.venue = venue
        self.rates = rates
        self.calls: List[Tuple[str, str, int]] = []

    async def quote(self, token_in: TrackedAsset, token_out: TrackedAsset, amount_in: int) -> Optional[Quote]:
        self.calls.append((token_in.symbol, token_out.symbol, amount_in))
        rate = self.rates.get((token_in.symbol, token_out.symbol))
        if rate is None:
            return None
        if isinstance(rate, Exception):
            raise rate
        whole_in = Decimal(amount_in) / Decimal(token_in.one_unit)
        amount_out = int(whole_in * Decimal(rate) * Decimal(token_out.one_unit))
        return Quote(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            venue=self.venue,
            pools=(f"{self.venue.value}-pool",),
        )

    async def pool_for(self, token_a: TrackedAsset, token_b: TrackedAsset) -> Optional[str]:
        return f"{self.venue.value}-pool"

    async def reserves(self, pool_address: str) -> List[int]:
        return []


class FakePriceSource:
    """Price source returning fixed USD prices by symbol."""

    def __init__(self, name: str, prices: Dict[str, object]):
        self.source_id = PriceSourceId(PriceSourceKind.API, name)
        self.prices = prices
        self.calls = 0

    async def fetch_price_usd(self, asset: TrackedAsset) -> Optional[Decimal]:
        self.calls += 1
        price = self.prices.get(asset.symbol)
        if isinstance(price, Exception):
            raise price
        return None if price is None else Decimal(str(price))


@pytest.fixture
def make_venue():
    return FakeVenue


@pytest.fixture
def make_price_source():
    return FakePriceSource


@pytest.fixture
def wallet() -> str:
    return WALLET


@pytest.fixture
def wallet_key() -> str:
    return WALLET_KEY
