"""
chains/block_feed.py - New-block event feed.

Delivers block numbers to a single async handler:
- websocket `newHeads` subscription when available
- polling fallback on eth_blockNumber when the subscription fails or drops
- bounded queue between producer and consumer, drained sequentially

Block numbers are emitted strictly increasing and never twice. The handler
for block N+1 never starts before the handler for N has returned.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import websockets

from chains.providers import RPCProvider
from core.constants import BLOCK_QUEUE_SIZE, DEFAULT_POLLING_INTERVAL_MS
from core.exceptions import ErrorCode, FeedError, InfraError
from core.lifecycle import ServiceLifecycle
from core.logging import get_logger, log_error
from core.math import parse_hex_int

logger = get_logger(__name__)

BlockHandler = Callable[[int], Awaitable[None]]

WS_SUBSCRIBE_TIMEOUT_SECONDS = 10


class BlockEventFeed:
    """
    Producer/consumer feed of new block numbers.

    Usage:
        feed = BlockEventFeed(provider, handler=pipeline.process_block, ws_url=ws)
        await feed.start()
        ...
        await feed.stop()
    """

    def __init__(
        self,
        provider: RPCProvider,
        handler: BlockHandler,
        ws_url: Optional[str] = None,
        use_websocket: bool = True,
        polling_interval_ms: int = DEFAULT_POLLING_INTERVAL_MS,
        queue_size: int = BLOCK_QUEUE_SIZE,
        ws_connect: Callable[..., Any] = websockets.connect,
    ):
        self.provider = provider
        self.handler = handler
        self.ws_url = ws_url
        self.use_websocket = use_websocket
        self.polling_interval_ms = polling_interval_ms
        self.queue_size = queue_size
        self._ws_connect = ws_connect

        self.lifecycle = ServiceLifecycle("block_feed")
        self._queue: Optional[asyncio.Queue] = None
        self._producer_task: Optional[asyncio.Task] = None
        self._consumer_task: Optional[asyncio.Task] = None

        self.mode = "idle"
        self.failed = False
        self.last_emitted: Optional[int] = None
        self.last_processed: Optional[int] = None
        self.blocks_processed = 0

    @property
    def is_running(self) -> bool:
        return self.lifecycle.is_running

    async def start(self) -> None:
        """Start producer and consumer tasks. No-op if already running."""
        if not self.lifecycle.start():
            logger.debug("Block feed already running")
            return

        self.failed = False
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        self._consumer_task = asyncio.create_task(self._consume(), name="block-feed-consumer")
        self._producer_task = asyncio.create_task(self._produce(), name="block-feed-producer")

        logger.info(
            "Block feed started",
            extra={"context": {"ws_url": self.ws_url, "use_websocket": self.use_websocket}},
        )

    async def stop(self) -> None:
        """
        Stop the feed. No-op if already stopped.

        In-flight block processing is aborted, not drained.
        """
        if not self.lifecycle.stop():
            return

        tasks = [t for t in (self._producer_task, self._consumer_task) if t is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._producer_task = None
        self._consumer_task = None
        self._queue = None
        self.mode = "idle"

        logger.info(
            "Block feed stopped",
            extra={"context": {"last_processed": self.last_processed, "blocks_processed": self.blocks_processed}},
        )

    # =========================================================================
    # PRODUCER
    # =========================================================================

    async def _emit(self, block_number: int) -> None:
        """Queue a block number if it is newer than anything emitted so far."""
        if self.last_emitted is not None and block_number <= self.last_emitted:
            return

        if self._consumer_task is None or self._consumer_task.done() or self._queue is None:
            raise FeedError(
                code=ErrorCode.FEED_CONSUMER_GONE,
                message="Block consumer is not running",
                details={"block_number": block_number},
            )

        await self._queue.put(block_number)
        self.last_emitted = block_number

    async def _produce(self) -> None:
        try:
            if self.use_websocket and self.ws_url:
                try:
                    await self._subscribe()
                except FeedError:
                    raise
                except Exception as e:
                    if self.lifecycle.stop_requested:
                        return
                    logger.warning(
                        "Block subscription failed, falling back to polling",
                        extra={"context": {"ws_url": self.ws_url, "error": str(e)}},
                    )

            if not self.lifecycle.stop_requested:
                await self._poll()

        except FeedError as e:
            self.failed = True
            log_error(logger, e.code.value, f"Block feed producer stopped: {e.message}", **e.details)

    async def _subscribe(self) -> None:
        """Consume newHeads until the connection drops."""
        async with self._ws_connect(self.ws_url, ping_interval=20, ping_timeout=10) as ws:
            await ws.send(json.dumps({
                "jsonrpc": "2.0",
                "id": 1,
                "method": "eth_subscribe",
                "params": ["newHeads"],
            }))

            ack = json.loads(await asyncio.wait_for(ws.recv(), timeout=WS_SUBSCRIBE_TIMEOUT_SECONDS))
            if "error" in ack or not ack.get("result"):
                raise InfraError(
                    code=ErrorCode.INFRA_WS_ERROR,
                    message="newHeads subscription rejected",
                    details={"response": ack},
                )

            self.mode = "websocket"
            logger.info("Subscribed to newHeads", extra={"context": {"subscription": ack["result"]}})

            async for message in ws:
                if self.lifecycle.stop_requested:
                    return
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.debug("Ignoring non-JSON websocket frame")
                    continue

                head = (data.get("params") or {}).get("result") or {}
                number = head.get("number")
                if number is None:
                    continue
                await self._emit(parse_hex_int(number))

        if not self.lifecycle.stop_requested:
            raise InfraError(
                code=ErrorCode.INFRA_WS_ERROR,
                message="newHeads stream ended",
                details={"ws_url": self.ws_url},
            )

    async def _poll(self) -> None:
        self.mode = "polling"
        interval = self.polling_interval_ms / 1000
        logger.info("Polling for blocks", extra={"context": {"interval_ms": self.polling_interval_ms}})

        while not self.lifecycle.stop_requested:
            try:
                block_number, _ = await self.provider.get_block_number()
                await self._emit(block_number)
            except InfraError as e:
                logger.warning(
                    "Block number poll failed",
                    extra={"context": {"error": str(e)}},
                )

            if await self.lifecycle.sleep(interval):
                return

    # =========================================================================
    # CONSUMER
    # =========================================================================

    async def _consume(self) -> None:
        assert self._queue is not None
        queue = self._queue

        while True:
            block_number = await queue.get()
            try:
                await self.handler(block_number)
                self.last_processed = block_number
                self.blocks_processed += 1
            except Exception as e:
                logger.error(
                    f"Block {block_number} processing failed: {e}",
                    exc_info=True,
                    extra={"context": {"block_number": block_number}},
                )
            finally:
                queue.task_done()
