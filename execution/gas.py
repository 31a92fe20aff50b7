"""
execution/gas.py - Gas price optimizer.

Strategies:
- FIXED:    always the configured ceiling
- EIP1559:  live base fee x multiplier + live priority fee, capped at the ceiling
- DYNAMIC:  live eth_gasPrice, capped at the ceiling

Live data is refreshed at most once per refresh window. A refreshed
estimate replaces the previous one in a single swap under the write lock,
so readers never see base fee and priority fee from different refreshes.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from chains.providers import RPCProvider
from core.constants import (
    FEE_HISTORY_BLOCKS,
    FEE_HISTORY_PERCENTILES,
    GAS_REFRESH_SECONDS,
    GasStrategy,
)
from core.exceptions import ArbyError, ErrorCode, ExecutionError
from core.locks import ReadWriteLock
from core.logging import get_logger
from core.math import gwei_to_wei, median, parse_hex_int, safe_decimal, scale_wei, wei_to_gwei
from core.time import is_fresh, now_ms

logger = get_logger(__name__)

# Index of the 50th percentile in FEE_HISTORY_PERCENTILES
_MEDIAN_REWARD_INDEX = FEE_HISTORY_PERCENTILES.index(50)


@dataclass(frozen=True)
class GasEstimate:
    """Live network fee data (wei)."""
    base_fee_wei: int
    priority_fee_wei: int
    gas_price_wei: int
    updated_ms: int


@dataclass(frozen=True)
class GasPrice:
    """
    Price chosen for a submission (wei).

    For legacy transactions only gas_price_wei is used; for type-2
    transactions max_fee_per_gas / max_priority_fee_per_gas.
    """
    strategy: GasStrategy
    gas_price_wei: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    @property
    def is_eip1559(self) -> bool:
        return self.strategy == GasStrategy.EIP1559


class GasOptimizer:
    """Chooses gas prices per the configured strategy."""

    def __init__(
        self,
        provider: RPCProvider,
        strategy: GasStrategy = GasStrategy.EIP1559,
        max_gas_price_gwei: Decimal = Decimal("100"),
        base_fee_multiplier: Decimal = Decimal("1.2"),
        priority_fee_gwei: Decimal = Decimal("2"),
        refresh_seconds: float = GAS_REFRESH_SECONDS,
    ):
        self.provider = provider
        self.strategy = strategy
        self.max_gas_price_wei = gwei_to_wei(max_gas_price_gwei)
        self.base_fee_multiplier = safe_decimal(base_fee_multiplier)
        self.default_priority_fee_wei = gwei_to_wei(priority_fee_gwei)
        self.refresh_seconds = refresh_seconds

        self._estimate: Optional[GasEstimate] = None
        self._lock = ReadWriteLock()
        self._refresh_lock = asyncio.Lock()

    async def current_estimate(self) -> Optional[GasEstimate]:
        async with self._lock.read():
            return self._estimate

    async def update_estimate(self) -> GasEstimate:
        """Read base fee, fee history and gas price from the node and store them."""
        block = await self.provider.get_block_by_number("latest")
        base_fee = parse_hex_int((block or {}).get("baseFeePerGas"))

        history = await self.provider.fee_history(
            FEE_HISTORY_BLOCKS, "latest", FEE_HISTORY_PERCENTILES
        )
        rewards = [
            Decimal(parse_hex_int(row[_MEDIAN_REWARD_INDEX]))
            for row in history.get("reward") or []
            if len(row) > _MEDIAN_REWARD_INDEX
        ]
        priority_fee = int(median(rewards)) if rewards else self.default_priority_fee_wei

        gas_price, _ = await self.provider.get_gas_price()

        estimate = GasEstimate(
            base_fee_wei=base_fee,
            priority_fee_wei=priority_fee,
            gas_price_wei=gas_price,
            updated_ms=now_ms(),
        )
        async with self._lock.write():
            self._estimate = estimate

        logger.debug(
            "Gas estimate updated",
            extra={"context": {
                "base_fee_gwei": str(wei_to_gwei(base_fee)),
                "priority_fee_gwei": str(wei_to_gwei(priority_fee)),
                "gas_price_gwei": str(wei_to_gwei(gas_price)),
            }},
        )
        return estimate

    async def _fresh_estimate(self) -> GasEstimate:
        async with self._refresh_lock:
            estimate = await self.current_estimate()
            if estimate is not None and is_fresh(estimate.updated_ms, self.refresh_seconds):
                return estimate
            try:
                return await self.update_estimate()
            except ArbyError as e:
                if estimate is None:
                    raise ExecutionError(
                        code=ErrorCode.EXEC_GAS_UNAVAILABLE,
                        message=f"No gas estimate available: {e.message}",
                    )
                logger.warning(
                    "Gas refresh failed, reusing previous estimate",
                    extra={"context": {"error": str(e), "age_ms": now_ms() - estimate.updated_ms}},
                )
                return estimate

    async def get_optimal_gas_price(self) -> GasPrice:
        """Gas price for a new submission under the configured strategy."""
        cap = self.max_gas_price_wei

        if self.strategy == GasStrategy.FIXED:
            return GasPrice(
                strategy=self.strategy,
                gas_price_wei=cap,
                max_fee_per_gas=cap,
                max_priority_fee_per_gas=min(self.default_priority_fee_wei, cap),
            )

        estimate = await self._fresh_estimate()

        if self.strategy == GasStrategy.EIP1559:
            max_fee = min(
                scale_wei(estimate.base_fee_wei, self.base_fee_multiplier) + estimate.priority_fee_wei,
                cap,
            )
            return GasPrice(
                strategy=self.strategy,
                gas_price_wei=max_fee,
                max_fee_per_gas=max_fee,
                max_priority_fee_per_gas=min(estimate.priority_fee_wei, max_fee),
            )

        gas_price = min(estimate.gas_price_wei, cap)
        return GasPrice(
            strategy=self.strategy,
            gas_price_wei=gas_price,
            max_fee_per_gas=gas_price,
            max_priority_fee_per_gas=min(estimate.priority_fee_wei, gas_price),
        )
