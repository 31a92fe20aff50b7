"""
strategy/pipeline.py - Per-block decision pipeline and its wiring.

One block:
    refresh prices -> scan -> evaluate -> (build -> submit -> track)

Every stage failure is logged and the block is abandoned; the next block
starts clean. Confirmation tracking runs in the background so it never
holds up the block queue.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Set

from chains.block_feed import BlockEventFeed
from chains.providers import RPCProvider
from config import BotConfig
from core.constants import VenueKind
from core.exceptions import ArbyError
from core.logging import get_logger, log_error
from core.models import ArbitrageOpportunity, TrackedAsset
from dex.registry import VenueQuoteService, VenueRegistry
from execution.builder import TransactionBuilder
from execution.contracts import AaveFlashLoan, ArbitrageContract
from execution.executor import ExecutionHandle, TransactionExecutor
from execution.gas import GasOptimizer
from execution.mev_share import MevShareClient
from execution.signer import TransactionSigner
from execution.state_machine import TransactionStateMachine
from pricing.oracle import PriceConsensusCache
from pricing.sources import CoinGeckoPriceSource, PriceSource, VenuePriceSource
from strategy.engine import StrategyEngine
from strategy.scanner import OpportunityScanner

logger = get_logger(__name__)


@dataclass
class PipelineStats:
    blocks_seen: int = 0
    blocks_skipped: int = 0
    opportunities_found: int = 0
    opportunities_selected: int = 0
    transactions_built: int = 0
    transactions_submitted: int = 0
    stage_failures: int = 0


@dataclass
class ArbitragePipeline:
    """Runs the decision pipeline for each new block."""
    provider: RPCProvider
    prices: PriceConsensusCache
    scanner: OpportunityScanner
    engine: StrategyEngine
    builder: Optional[TransactionBuilder] = None
    executor: Optional[TransactionExecutor] = None
    execution_enabled: bool = False
    confirmation_timeout: float = 60.0
    mev_share: Optional[MevShareClient] = None
    price_sources: List[PriceSource] = field(default_factory=list)
    feed: Optional[BlockEventFeed] = None
    stats: PipelineStats = field(default_factory=PipelineStats)
    last_transaction: Optional[TransactionStateMachine] = None
    _tracking: Set[asyncio.Task] = field(default_factory=set)

    async def process_block(self, block_number: int) -> Optional[ArbitrageOpportunity]:
        """Handle one block. Returns the selected opportunity, if any."""
        self.stats.blocks_seen += 1

        try:
            block = await self.provider.get_block_by_number(block_number, True)
        except ArbyError as e:
            self._stage_failed("fetch_block", block_number, e)
            return None
        if block is None:
            self.stats.blocks_skipped += 1
            logger.warning(f"Block {block_number} not found")
            return None

        logger.debug(
            f"Processing block {block_number}",
            extra={"context": {
                "block_number": block_number,
                "transactions": len(block.get("transactions") or []),
            }},
        )

        try:
            await self.prices.refresh_all()
            opportunities = await self.scanner.scan()
        except ArbyError as e:
            self._stage_failed("scan", block_number, e)
            return None

        self.stats.opportunities_found += len(opportunities)
        if opportunities:
            logger.info(
                f"Found {len(opportunities)} potential opportunities in block {block_number}",
                extra={"context": {"block_number": block_number, "count": len(opportunities)}},
            )

        best = self.engine.evaluate_opportunities(opportunities)
        if best is None:
            return None
        self.stats.opportunities_selected += 1

        if self.execution_enabled and self.builder is not None and self.executor is not None:
            await self._execute(best, block_number)
        return best

    async def _execute(self, opportunity: ArbitrageOpportunity, block_number: int) -> None:
        try:
            tx = await self.builder.build_transaction(opportunity)
            self.stats.transactions_built += 1
            if tx.degraded:
                logger.warning(
                    f"Not submitting degraded transaction for {opportunity.id}",
                    extra={"context": {"reason": tx.degraded_reason}},
                )
                return
            handle = await self.executor.execute_transaction(tx)
        except ArbyError as e:
            self._stage_failed("execute", block_number, e)
            return

        self.stats.transactions_submitted += 1
        self.last_transaction = handle.machine
        task = asyncio.create_task(self._track(handle), name=f"track-{handle.tx_hash[:10]}")
        self._tracking.add(task)
        task.add_done_callback(self._tracking.discard)

    async def _track(self, handle: ExecutionHandle) -> None:
        try:
            result = await self.executor.wait_for_transaction(
                handle.tx_hash, self.confirmation_timeout, machine=handle.machine
            )
        except ArbyError as e:
            log_error(
                logger,
                e.code.value,
                f"Tracking {handle.tx_hash} ended: {e.message}",
                state=handle.state.value,
            )
            return
        if not result.success:
            logger.warning(
                f"Transaction {handle.tx_hash} reverted",
                extra={"context": handle.machine.to_dict()},
            )

    def _stage_failed(self, stage: str, block_number: int, error: ArbyError) -> None:
        self.stats.stage_failures += 1
        log_error(
            logger,
            error.code.value,
            f"{stage} failed for block {block_number}: {error.message}",
            stage=stage,
            block_number=block_number,
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self, continuous_scanning: bool = False) -> None:
        if self.feed is not None:
            await self.feed.start()
        if continuous_scanning:
            await self.scanner.start_continuous_scanning()

    async def stop(self) -> None:
        """Stop feed and scanner, drop confirmation trackers, close clients."""
        if self.feed is not None:
            await self.feed.stop()
        await self.scanner.stop_continuous_scanning()

        for task in list(self._tracking):
            task.cancel()
        if self._tracking:
            await asyncio.gather(*self._tracking, return_exceptions=True)

        for source in self.price_sources:
            close = getattr(source, "close", None)
            if close is not None:
                await close()
        if self.mev_share is not None:
            await self.mev_share.close()
        await self.provider.close()


# =============================================================================
# WIRING
# =============================================================================

def build_pipeline(
    config: BotConfig,
    provider: Optional[RPCProvider] = None,
    registry: Optional[VenueRegistry] = None,
) -> ArbitragePipeline:
    """Assemble every component from configuration."""
    retry_policy = config.retry.to_policy()
    provider = provider or RPCProvider(
        chain_id=config.ethereum.chain_id,
        rpc_urls=config.ethereum.rpc_urls,
        retry_policy=retry_policy,
    )

    assets = [TrackedAsset(address=t.address, symbol=t.symbol, decimals=t.decimals) for t in config.tokens]
    by_symbol = {a.symbol: a for a in assets}
    numeraire = by_symbol[config.pricing.numeraire]

    registry = registry or VenueRegistry.from_config(provider, config.venues)
    quotes = VenueQuoteService(registry)

    sources: List[PriceSource] = []
    usd_stable = by_symbol.get(config.pricing.usd_stable)
    if usd_stable is not None:
        for kind in registry.kinds:
            if kind != VenueKind.CURVE:
                sources.append(VenuePriceSource(quotes, kind, usd_stable))
    if config.pricing.coingecko_enabled:
        sources.append(CoinGeckoPriceSource(
            api_url=config.pricing.coingecko_api_url,
            platform=config.pricing.coingecko_platform,
        ))

    prices = PriceConsensusCache(
        assets,
        numeraire=numeraire,
        sources=sources,
        freshness_seconds=config.pricing.freshness_seconds,
        max_deviation_pct=config.security.max_price_deviation,
        min_sources=config.security.min_price_sources,
        enforce_min_sources=config.security.enforce_min_price_sources,
    )

    scanner = OpportunityScanner(assets, quotes, prices, quiet_mode=config.test_mode)
    engine = StrategyEngine(
        assets,
        quotes,
        prices,
        min_profit_threshold=config.arbitrage.min_profit_threshold,
        max_hops=config.arbitrage.max_hops,
    )

    gas = GasOptimizer(
        provider,
        strategy=config.gas.strategy,
        max_gas_price_gwei=config.gas.max_gas_price,
        base_fee_multiplier=config.gas.base_fee_multiplier,
        priority_fee_gwei=config.gas.priority_fee,
    )

    mev_share = MevShareClient(
        api_url=config.mev_share.api_url,
        api_key=config.mev_share.api_key,
        enabled=config.mev_share.enabled,
        retry_policy=retry_policy,
    )

    signer = TransactionSigner(config.ethereum.private_key) if config.ethereum.private_key else None
    wallet = config.ethereum.wallet_address or (signer.address if signer else "")

    builder = TransactionBuilder(
        provider,
        gas,
        wallet_address=wallet,
        gas_limit=config.gas.gas_limit,
        slippage_tolerance=config.arbitrage.slippage_tolerance,
        use_private_channel=config.mev_share.enabled,
        contract=ArbitrageContract(config.arbitrage.contract_address) if config.arbitrage.contract_address else None,
        flash_loan=AaveFlashLoan(config.flash_loan.aave_lending_pool, config.flash_loan.max_borrow_amount),
    )
    executor = TransactionExecutor(
        provider,
        gas,
        chain_id=config.ethereum.chain_id,
        signer=signer,
        mev_share=mev_share,
    )

    if config.execution_enabled and signer is None:
        logger.warning("Execution enabled but no signing key configured; submissions will fail")

    pipeline = ArbitragePipeline(
        provider=provider,
        prices=prices,
        scanner=scanner,
        engine=engine,
        builder=builder,
        executor=executor,
        execution_enabled=config.execution_enabled,
        confirmation_timeout=float(config.security.transaction_timeout),
        mev_share=mev_share,
        price_sources=sources,
    )
    pipeline.feed = BlockEventFeed(
        provider,
        handler=pipeline.process_block,
        ws_url=config.ethereum.ws_url,
        use_websocket=config.ethereum.use_websocket,
        polling_interval_ms=config.ethereum.polling_interval_ms,
    )
    return pipeline
