"""
pricing/sources.py - USD price sources.

- VenuePriceSource: quotes one unit of the asset into a USD stablecoin on a
  single venue
- CoinGeckoPriceSource: CoinGecko simple/token_price endpoint

A source returns None when it has no price for the asset (data absence) and
raises PriceError when the source itself fails.
"""

from decimal import Decimal
from typing import Optional, Protocol

import httpx

from core.constants import PriceSourceKind, VenueKind
from core.exceptions import ArbyError, ErrorCode, PriceError
from core.logging import get_logger
from core.math import normalize_to_decimals, safe_decimal
from core.models import PriceSourceId, TrackedAsset
from dex.registry import VenueQuoteService

logger = get_logger(__name__)


class PriceSource(Protocol):
    """Anything that can price an asset in USD."""

    source_id: PriceSourceId

    async def fetch_price_usd(self, asset: TrackedAsset) -> Optional[Decimal]: ...


class VenuePriceSource:
    """
    Price from a venue: one unit of the asset quoted into the USD stable.

    The stable itself is pegged at 1.
    """

    def __init__(
        self,
        quotes: VenueQuoteService,
        venue: VenueKind,
        usd_stable: TrackedAsset,
    ):
        self.quotes = quotes
        self.venue = venue
        self.usd_stable = usd_stable
        self.source_id = PriceSourceId(PriceSourceKind.VENUE, venue.value)

    async def fetch_price_usd(self, asset: TrackedAsset) -> Optional[Decimal]:
        if asset.key == self.usd_stable.key:
            return Decimal("1")

        try:
            quote = await self.quotes.quote_on(self.venue, asset, self.usd_stable, asset.one_unit)
        except ArbyError as e:
            raise PriceError(
                code=ErrorCode.PRICE_SOURCE_FAILED,
                message=f"{self.source_id} quote failed: {e.message}",
                details={"asset": asset.symbol},
            )

        if quote is None:
            return None
        return normalize_to_decimals(quote.amount_out, self.usd_stable.decimals)


class CoinGeckoPriceSource:
    """
    CoinGecko token price by contract address.

    GET {api_url}/simple/token_price/{platform}?contract_addresses=..&vs_currencies=usd
    """

    def __init__(
        self,
        api_url: str = "https://api.coingecko.com/api/v3",
        platform: str = "ethereum",
        timeout_seconds: float = 10,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.platform = platform
        self.timeout_seconds = timeout_seconds
        self._client = client
        self.source_id = PriceSourceId(PriceSourceKind.API, "coingecko")

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_seconds))
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_price_usd(self, asset: TrackedAsset) -> Optional[Decimal]:
        client = await self._get_client()
        url = f"{self.api_url}/simple/token_price/{self.platform}"
        params = {"contract_addresses": asset.address, "vs_currencies": "usd"}

        try:
            response = await client.get(url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PriceError(
                code=ErrorCode.PRICE_SOURCE_FAILED,
                message=f"CoinGecko request failed: {e}",
                details={"asset": asset.symbol},
            )

        entry = data.get(asset.address.lower()) or data.get(asset.address) or {}
        price = entry.get("usd")
        if price is None:
            return None
        return safe_decimal(price)
