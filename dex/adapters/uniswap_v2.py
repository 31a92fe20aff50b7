"""
dex/adapters/uniswap_v2.py - Uniswap V2 style quoting adapter.

Serves every constant-product fork with the V2 router/factory ABI
(Uniswap V2, SushiSwap):
- quotes via router.getAmountsOut
- pool lookup via factory.getPair
- reserves via pair.getReserves
"""

from eth_abi.exceptions import DecodingError

from chains.abi import checksum, decode_result, decode_venue_result, encode_call
from chains.providers import RPCProvider
from core.constants import VenueKind, ZERO_ADDRESS
from core.exceptions import ErrorCode, InfraError, QuoteError, RPCResponseError
from core.logging import get_logger
from core.models import Quote, TrackedAsset

logger = get_logger(__name__)


# =============================================================================
# ABI ENCODING
# =============================================================================

SIG_GET_AMOUNTS_OUT = "getAmountsOut(uint256,address[])"
SIG_GET_PAIR = "getPair(address,address)"
SIG_GET_RESERVES = "getReserves()"


def encode_get_amounts_out(amount_in: int, path: list[str]) -> str:
    return encode_call(SIG_GET_AMOUNTS_OUT, [amount_in, [checksum(a) for a in path]])


def decode_amounts_out(hex_result: str) -> list[int]:
    """Decode getAmountsOut -> uint256[]. Empty return data is a revert."""
    if not hex_result or hex_result == "0x":
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message="Empty getAmountsOut response",
        )
    try:
        (amounts,) = decode_result(["uint256[]"], hex_result)
    except (DecodingError, ValueError) as e:
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message=f"Malformed getAmountsOut response: {e}",
            details={"raw": hex_result[:100]},
        )
    return list(amounts)


def decode_reserves(hex_result: str) -> tuple[int, int] | None:
    """Decode getReserves. None when the pair returned nothing."""
    decoded = decode_venue_result(["uint112", "uint112", "uint32"], hex_result, "getReserves")
    if decoded is None:
        return None
    reserve0, reserve1, _ = decoded
    return reserve0, reserve1


# =============================================================================
# ADAPTER
# =============================================================================

class UniswapV2Adapter:
    """
    Quote capability for a V2 router/factory pair.

    Usage:
        adapter = UniswapV2Adapter(provider, VenueKind.SUSHISWAP, router, factory)
        quote = await adapter.quote(weth, usdc, 10**18)
    """

    def __init__(
        self,
        provider: RPCProvider,
        venue: VenueKind,
        router_address: str,
        factory_address: str,
    ):
        self.provider = provider
        self.venue = venue
        self.router_address = router_address
        self.factory_address = factory_address

    async def quote(
        self,
        token_in: TrackedAsset,
        token_out: TrackedAsset,
        amount_in: int,
    ) -> Quote | None:
        """
        Quote token_in -> token_out through the router.

        Returns None when the venue has no route (router reverts or zero
        output). Raises QuoteError when the call itself cannot be made.
        """
        if amount_in <= 0 or token_in.key == token_out.key:
            return None

        path = [token_in.address, token_out.address]
        call_data = encode_get_amounts_out(amount_in, path)

        try:
            response = await self.provider.eth_call(to=self.router_address, data=call_data)
        except RPCResponseError as e:
            logger.debug(
                f"{self.venue.value}: no route {token_in.symbol}->{token_out.symbol}",
                extra={"context": {"error": e.message}},
            )
            return None
        except InfraError as e:
            raise QuoteError(
                code=ErrorCode.QUOTE_TIMEOUT,
                message=f"{self.venue.value} quote call failed: {e.message}",
                details={"router": self.router_address, **e.details},
            )

        amounts = decode_amounts_out(response.result)
        amount_out = amounts[-1] if amounts else 0
        if amount_out <= 0:
            return None

        return Quote(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=amount_out,
            venue=self.venue,
            path=tuple(path),
        )

    async def pool_for(self, token_a: TrackedAsset, token_b: TrackedAsset) -> str | None:
        """Pair address from the factory, or None if the pair does not exist."""
        response = await self.provider.eth_call(
            to=self.factory_address,
            data=encode_call(SIG_GET_PAIR, [checksum(token_a.address), checksum(token_b.address)]),
        )
        decoded = decode_venue_result(["address"], response.result, "getPair")
        if decoded is None or decoded[0].lower() == ZERO_ADDRESS:
            return None
        return decoded[0]

    async def reserves(self, pool_address: str) -> list[int]:
        """Pair reserves as [reserve0, reserve1]."""
        response = await self.provider.eth_call(
            to=pool_address,
            data=encode_call(SIG_GET_RESERVES, []),
        )
        reserves = decode_reserves(response.result)
        return list(reserves) if reserves is not None else []
