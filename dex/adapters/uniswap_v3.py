"""
dex/adapters/uniswap_v3.py - Uniswap V3 quoting adapter.

Implements quoting via the QuoterV2 contract.
Supports:
- Single-hop quotes (quoteExactInputSingle) across all fee tiers
- Pool lookup via factory.getPool
- Active liquidity as the "reserves" figure
"""

import asyncio
from dataclasses import dataclass

from chains.abi import checksum, decode_venue_result, encode_call
from chains.providers import RPCProvider
from core.constants import V3_FEE_TIERS, VenueKind, ZERO_ADDRESS
from core.exceptions import ErrorCode, InfraError, QuoteError, RPCResponseError
from core.logging import get_logger
from core.models import Quote, TrackedAsset

logger = get_logger(__name__)


# =============================================================================
# ABI ENCODING
# =============================================================================

# Function selector: quoteExactInputSingle((address,address,uint256,uint24,uint160))
# keccak256("quoteExactInputSingle((address,address,uint256,uint24,uint160))")[:4]
SELECTOR_QUOTE_EXACT_INPUT_SINGLE = "0xc6a5026a"

SIG_GET_POOL = "getPool(address,address,uint24)"
SIG_LIQUIDITY = "liquidity()"


def encode_quote_exact_input_single(
    token_in: str,
    token_out: str,
    amount_in: int,
    fee: int,
    sqrt_price_limit_x96: int = 0,
) -> str:
    """
    Encode quoteExactInputSingle call data for QuoterV2.

    QuoterV2 uses a struct parameter:
    struct QuoteExactInputSingleParams {
        address tokenIn;
        address tokenOut;
        uint256 amountIn;
        uint24 fee;
        uint160 sqrtPriceLimitX96;
    }

    For a tuple of static types, encoding is simply: selector + fields (no offset).
    """
    token_in_padded = token_in[2:].lower().zfill(64)
    token_out_padded = token_out[2:].lower().zfill(64)
    amount_in_hex = hex(amount_in)[2:].zfill(64)
    fee_hex = hex(fee)[2:].zfill(64)
    sqrt_price_hex = hex(sqrt_price_limit_x96)[2:].zfill(64)

    return (
        f"{SELECTOR_QUOTE_EXACT_INPUT_SINGLE}"
        f"{token_in_padded}"
        f"{token_out_padded}"
        f"{amount_in_hex}"
        f"{fee_hex}"
        f"{sqrt_price_hex}"
    )


def decode_quote_response(hex_result: str) -> tuple[int, int, int, int]:
    """
    Decode quoteExactInputSingle response.

    Returns:
        (amountOut, sqrtPriceX96After, initializedTicksCrossed, gasEstimate)
    """
    if not hex_result or hex_result == "0x":
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message="Empty quote response",
        )

    data = hex_result[2:] if hex_result.startswith("0x") else hex_result

    # Four 32-byte words
    if len(data) < 256:
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message=f"Quote response too short: {len(data)} chars",
            details={"data_length": len(data), "raw": hex_result[:100]},
        )

    try:
        amount_out = int(data[0:64], 16)
        sqrt_price_x96_after = int(data[64:128], 16)
        ticks_crossed = int(data[128:192], 16)
        gas_estimate = int(data[192:256], 16)
    except ValueError:
        raise QuoteError(
            code=ErrorCode.QUOTE_REVERT,
            message="Quote response is not hex",
            details={"raw": hex_result[:100]},
        )

    return amount_out, sqrt_price_x96_after, ticks_crossed, gas_estimate


# =============================================================================
# ADAPTER
# =============================================================================

@dataclass
class UniswapV3QuoteResult:
    """Result from one fee tier."""
    fee: int
    amount_out: int
    gas_estimate: int


class UniswapV3Adapter:
    """
    Quote capability for Uniswap V3 via QuoterV2.

    A quote tries every fee tier and keeps the best output.
    """

    def __init__(
        self,
        provider: RPCProvider,
        quoter_address: str,
        factory_address: str,
        fee_tiers: list[int] | None = None,
        venue: VenueKind = VenueKind.UNISWAP_V3,
    ):
        self.provider = provider
        self.quoter_address = quoter_address
        self.factory_address = factory_address
        self.fee_tiers = fee_tiers or list(V3_FEE_TIERS)
        self.venue = venue

    async def _quote_tier(
        self,
        token_in: str,
        token_out: str,
        amount_in: int,
        fee: int,
    ) -> UniswapV3QuoteResult | None:
        call_data = encode_quote_exact_input_single(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            fee=fee,
        )
        try:
            response = await self.provider.eth_call(to=self.quoter_address, data=call_data)
        except RPCResponseError:
            # No pool at this tier, or not enough liquidity
            return None

        amount_out, _, _, gas = decode_quote_response(response.result)
        return UniswapV3QuoteResult(fee=fee, amount_out=amount_out, gas_estimate=gas)

    async def quote(
        self,
        token_in: TrackedAsset,
        token_out: TrackedAsset,
        amount_in: int,
    ) -> Quote | None:
        """Best quote across fee tiers, or None if no tier returns output."""
        if amount_in <= 0 or token_in.key == token_out.key:
            return None

        try:
            results = await asyncio.gather(*[
                self._quote_tier(token_in.address, token_out.address, amount_in, fee)
                for fee in self.fee_tiers
            ])
        except InfraError as e:
            raise QuoteError(
                code=ErrorCode.QUOTE_TIMEOUT,
                message=f"uniswap_v3 quote call failed: {e.message}",
                details={"quoter": self.quoter_address, **e.details},
            )

        best = max(
            (r for r in results if r is not None and r.amount_out > 0),
            key=lambda r: r.amount_out,
            default=None,
        )
        if best is None:
            return None

        logger.debug(
            f"Quote: {token_in.symbol}->{token_out.symbol} "
            f"{amount_in} -> {best.amount_out} (fee={best.fee})"
        )

        return Quote(
            token_in=token_in,
            token_out=token_out,
            amount_in=amount_in,
            amount_out=best.amount_out,
            venue=self.venue,
            path=(token_in.address, token_out.address),
            pools=(f"fee:{best.fee}",),
        )

    async def pool_for(self, token_a: TrackedAsset, token_b: TrackedAsset) -> str | None:
        """First existing pool across fee tiers, lowest fee first."""
        for fee in sorted(self.fee_tiers):
            response = await self.provider.eth_call(
                to=self.factory_address,
                data=encode_call(SIG_GET_POOL, [checksum(token_a.address), checksum(token_b.address), fee]),
            )
            decoded = decode_venue_result(["address"], response.result, "getPool")
            if decoded is not None and decoded[0].lower() != ZERO_ADDRESS:
                return decoded[0]
        return None

    async def reserves(self, pool_address: str) -> list[int]:
        """In-range liquidity of the pool (V3 has no flat reserves)."""
        response = await self.provider.eth_call(
            to=pool_address,
            data=encode_call(SIG_LIQUIDITY, []),
        )
        decoded = decode_venue_result(["uint128"], response.result, "liquidity")
        return [decoded[0]] if decoded is not None else []
