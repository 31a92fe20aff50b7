"""
dex/adapters/curve.py - Curve stable-swap quoting adapter.

Pools are configured with their coin lists, so quoting needs no on-chain
index discovery: get_dy(i, j, dx) on every pool holding both coins, best
output wins.
"""

from dataclasses import dataclass, field

from chains.abi import decode_venue_result, encode_call
from chains.providers import RPCProvider
from core.constants import VenueKind
from core.exceptions import ErrorCode, InfraError, QuoteError, RPCResponseError
from core.logging import get_logger
from core.models import Quote, TrackedAsset

logger = get_logger(__name__)

SIG_GET_DY = "get_dy(int128,int128,uint256)"
SIG_BALANCES = "balances(uint256)"


@dataclass(frozen=True)
class CurvePool:
    """A Curve pool and its coins in index order."""
    address: str
    coins: tuple[str, ...] = field(default_factory=tuple)

    def index_of(self, token_address: str) -> int | None:
        lowered = [c.lower() for c in self.coins]
        key = token_address.lower()
        return lowered.index(key) if key in lowered else None


class CurveAdapter:
    """Quote capability over a fixed set of Curve pools."""

    def __init__(
        self,
        provider: RPCProvider,
        pools: list[CurvePool],
        venue: VenueKind = VenueKind.CURVE,
    ):
        self.provider = provider
        self.pools = pools
        self.venue = venue

    def _pools_for(self, token_in: TrackedAsset, token_out: TrackedAsset) -> list[tuple[CurvePool, int, int]]:
        matches = []
        for pool in self.pools:
            i = pool.index_of(token_in.address)
            j = pool.index_of(token_out.address)
            if i is not None and j is not None and i != j:
                matches.append((pool, i, j))
        return matches

    async def quote(
        self,
        token_in: TrackedAsset,
        token_out: TrackedAsset,
        amount_in: int,
    ) -> Quote | None:
        if amount_in <= 0:
            return None

        best: tuple[int, CurvePool] | None = None
        for pool, i, j in self._pools_for(token_in, token_out):
            try:
                response = await self.provider.eth_call(
                    to=pool.address,
                    data=encode_call(SIG_GET_DY, [i, j, amount_in]),
                )
            except RPCResponseError:
                continue
            except InfraError as e:
                raise QuoteError(
                    code=ErrorCode.QUOTE_TIMEOUT,
                    message=f"curve get_dy failed: {e.message}",
                    details={"pool": pool.address, **e.details},
                )

            decoded = decode_venue_result(["uint256"], response.result, "get_dy")
            if decoded is None:
                continue
            (dy,) = decoded
            if dy > 0 and (best is None or dy > best[0]):
                best = (dy, pool)

        if best is None:
            return None

        amount_out, pool = best
        return Quote(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            venue=self.venue,
            path=(token_in.address, token_out.address),
            pools=(pool.address,),
        )

    async def pool_for(self, token_a: TrackedAsset, token_b: TrackedAsset) -> str | None:
        matches = self._pools_for(token_a, token_b)
        return matches[0][0].address if matches else None

    async def reserves(self, pool_address: str) -> list[int]:
        """balances(i) for every configured coin of the pool."""
        pool = next((p for p in self.pools if p.address.lower() == pool_address.lower()), None)
        if pool is None:
            return []

        balances = []
        for i in range(len(pool.coins)):
            response = await self.provider.eth_call(
                to=pool.address,
                data=encode_call(SIG_BALANCES, [i]),
            )
            decoded = decode_venue_result(["uint256"], response.result, "balances")
            if decoded is None:
                return []
            balances.append(decoded[0])
        return balances
