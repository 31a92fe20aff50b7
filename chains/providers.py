"""
chains/providers.py - JSON-RPC provider with failover and retry.

Provides reliable RPC access with:
- Multiple endpoint failover
- Bounded exponential-backoff retry of whole failover rounds
- Request timeout handling
- Latency tracking per endpoint
"""

import time
from dataclasses import dataclass
from typing import Any

import httpx

from core.exceptions import ErrorCode, InfraError, RPCResponseError
from core.logging import get_logger
from core.math import parse_hex_int
from core.retry import NO_RETRY, RetryPolicy, retrying

logger = get_logger(__name__)


@dataclass
class RPCStats:
    """Statistics for an RPC endpoint."""
    url: str
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_latency_ms: int = 0
    last_error: str | None = None
    last_success_ts: int | None = None

    @property
    def avg_latency_ms(self) -> int:
        if self.successful_requests == 0:
            return 0
        return self.total_latency_ms // self.successful_requests

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests


@dataclass
class RPCResponse:
    """Response from an RPC call."""
    result: Any
    latency_ms: int
    endpoint_used: str


class RPCProvider:
    """
    RPC provider with failover support.

    Tries each endpoint in order until one succeeds. If every endpoint fails
    on transport, the whole round is retried under the retry policy. A
    JSON-RPC error object (e.g. "execution reverted") is a definitive answer
    and is raised as RPCResponseError without retry.
    """

    def __init__(
        self,
        chain_id: int,
        rpc_urls: list[str],
        timeout_seconds: float = 10,
        retry_policy: RetryPolicy = NO_RETRY,
        client: httpx.AsyncClient | None = None,
    ):
        self.chain_id = chain_id
        self.rpc_urls = [url for url in rpc_urls if url]
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy
        self._client = client
        self._request_id = 0

        self.stats: dict[str, RPCStats] = {
            url: RPCStats(url=url) for url in self.rpc_urls
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    async def call(
        self,
        method: str,
        params: list | None = None,
    ) -> RPCResponse:
        """
        Make an RPC call with failover and retry.

        Raises:
            RPCResponseError: Node returned a JSON-RPC error
            InfraError: All endpoints failed on every attempt
        """
        async for attempt in retrying(self.retry_policy, (InfraError,)):
            with attempt:
                return await self._call_once(method, params)
        raise AssertionError("unreachable: tenacity re-raises on the final attempt")

    async def _call_once(
        self,
        method: str,
        params: list | None,
    ) -> RPCResponse:
        if not self.rpc_urls:
            raise InfraError(
                code=ErrorCode.INFRA_RPC_ERROR,
                message="No RPC endpoints configured",
                details={"chain_id": self.chain_id},
            )

        client = await self._get_client()
        last_error: Exception | None = None
        rpc_error: RPCResponseError | None = None

        for url in self.rpc_urls:
            stats = self.stats[url]
            stats.total_requests += 1

            payload = {
                "jsonrpc": "2.0",
                "method": method,
                "params": params or [],
                "id": self._next_request_id(),
            }

            start_ms = int(time.time() * 1000)

            try:
                resp = await client.post(url, json=payload)
                latency_ms = int(time.time() * 1000) - start_ms
                body = resp.json()

                if "error" in body:
                    error = body["error"]
                    error_msg = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                    stats.failed_requests += 1
                    stats.last_error = error_msg
                    rpc_error = RPCResponseError(
                        code=ErrorCode.INFRA_RPC_RESPONSE,
                        message=f"RPC error: {error_msg}",
                        details={"url": url, "method": method},
                    )
                    logger.debug(f"RPC error from {url}: {error_msg}")
                    continue

                stats.successful_requests += 1
                stats.total_latency_ms += latency_ms
                stats.last_success_ts = int(time.time() * 1000)

                return RPCResponse(
                    result=body.get("result"),
                    latency_ms=latency_ms,
                    endpoint_used=url,
                )

            except httpx.TimeoutException as e:
                latency_ms = int(time.time() * 1000) - start_ms
                stats.failed_requests += 1
                stats.last_error = f"Timeout after {latency_ms}ms"
                last_error = e
                logger.debug(f"RPC timeout for {url}: {latency_ms}ms")
                continue

            except (httpx.HTTPError, ValueError) as e:
                stats.failed_requests += 1
                stats.last_error = str(e)
                last_error = e
                logger.debug(f"RPC failed for {url}: {e}")
                continue

        if rpc_error is not None:
            raise rpc_error

        code = ErrorCode.INFRA_RPC_TIMEOUT if isinstance(last_error, httpx.TimeoutException) else ErrorCode.INFRA_RPC_ERROR
        raise InfraError(
            code=code,
            message=f"All RPC endpoints failed for chain {self.chain_id}",
            details={
                "chain_id": self.chain_id,
                "method": method,
                "endpoints_tried": len(self.rpc_urls),
                "last_error": str(last_error),
            },
        )

    # =========================================================================
    # CHAIN STATE
    # =========================================================================

    async def get_chain_id(self) -> int:
        """Get chain ID from RPC."""
        response = await self.call("eth_chainId")
        return parse_hex_int(response.result)

    async def get_block_number(self) -> tuple[int, int]:
        """
        Get latest block number.

        Returns:
            (block_number, latency_ms)
        """
        response = await self.call("eth_blockNumber")
        return parse_hex_int(response.result), response.latency_ms

    async def get_block_by_number(
        self,
        block: int | str = "latest",
        full_transactions: bool = False,
    ) -> dict | None:
        """Fetch a block. Returns None if the node does not know it (yet)."""
        tag = hex(block) if isinstance(block, int) else block
        response = await self.call("eth_getBlockByNumber", [tag, full_transactions])
        return response.result

    async def eth_call(
        self,
        to: str,
        data: str,
        block: str = "latest",
    ) -> RPCResponse:
        """
        Make eth_call.

        Args:
            to: Contract address
            data: Encoded call data
            block: Block number or "latest"
        """
        return await self.call(
            "eth_call",
            [{"to": to, "data": data}, block],
        )

    # =========================================================================
    # GAS
    # =========================================================================

    async def get_gas_price(self) -> tuple[int, int]:
        """
        Get current gas price in wei.

        Returns:
            (gas_price_wei, latency_ms)
        """
        response = await self.call("eth_gasPrice")
        return parse_hex_int(response.result), response.latency_ms

    async def fee_history(
        self,
        block_count: int,
        newest_block: str = "latest",
        reward_percentiles: list[int] | None = None,
    ) -> dict:
        """eth_feeHistory. Reward rows are left as hex strings."""
        response = await self.call(
            "eth_feeHistory",
            [hex(block_count), newest_block, reward_percentiles or []],
        )
        return response.result or {}

    async def estimate_gas(self, tx: dict) -> int:
        """eth_estimateGas for a transaction request."""
        response = await self.call("eth_estimateGas", [tx])
        return parse_hex_int(response.result)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        """Nonce for an address."""
        response = await self.call("eth_getTransactionCount", [address, block])
        return parse_hex_int(response.result)

    async def send_raw_transaction(self, raw_tx: str) -> str:
        """Broadcast a signed transaction. Returns the transaction hash."""
        response = await self.call("eth_sendRawTransaction", [raw_tx])
        return response.result

    async def get_transaction(self, tx_hash: str) -> dict | None:
        """eth_getTransactionByHash. None if unknown to the node."""
        response = await self.call("eth_getTransactionByHash", [tx_hash])
        return response.result

    async def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        """eth_getTransactionReceipt. None while the transaction is pending."""
        response = await self.call("eth_getTransactionReceipt", [tx_hash])
        return response.result

    def get_stats_summary(self) -> dict:
        """Get statistics summary for all endpoints."""
        return {
            url: {
                "total_requests": s.total_requests,
                "success_rate": round(s.success_rate, 3),
                "avg_latency_ms": s.avg_latency_ms,
                "last_error": s.last_error,
            }
            for url, s in self.stats.items()
        }
