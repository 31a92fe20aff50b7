"""
execution/mev_share.py - Flashbots MEV-Share client.

Private order flow: signed transactions and bundles are sent to the relay
instead of the public mempool. The relay returns a hash once it accepts a
submission, not once it is mined.

Endpoints:
    POST /api/v1/tx                    private transaction
    POST /api/v1/bundle                bundle bound to a target block
    GET  /api/v1/bundle/status/{id}    bundle status
    GET  /api/v1/bundle/stats          aggregate statistics
    GET  /api/v1/events/transaction    server-sent pending-tx hints
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from core.exceptions import ErrorCode, MevShareError
from core.logging import get_logger
from core.retry import NO_RETRY, RetryPolicy, call_with_retry

logger = get_logger(__name__)

BUNDLE_VERSION = "v0.1"
SSE_DATA_PREFIX = "data: "


@dataclass(frozen=True)
class PrivacyHints:
    """What the relay may reveal to searchers about a private transaction."""
    transaction: bool = True
    block: bool = True
    calldata: bool = False
    contractAddress: bool = True
    logs: bool = True
    functionSelector: bool = True
    hash: bool = True


@dataclass(frozen=True)
class BundleStats:
    total_bundles: int
    total_transactions: int


class MevShareClient:
    """
    HTTP client for the MEV-Share relay.

    Every call raises MevShareError(MEV_SHARE_DISABLED) while the client is
    disabled.
    """

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        enabled: bool = False,
        timeout_seconds: float = 10.0,
        retry_policy: RetryPolicy = NO_RETRY,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.enabled = enabled
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy
        self._client = client

    # =========================================================================
    # HTTP PLUMBING
    # =========================================================================

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Flashbots-Signature"] = self.api_key
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _require_enabled(self) -> None:
        if not self.enabled:
            raise MevShareError(
                code=ErrorCode.MEV_SHARE_DISABLED,
                message="MEV-Share is not enabled",
            )

    async def _request(self, method: str, path: str, body: Optional[dict] = None) -> Dict[str, Any]:
        client = await self._get_client()
        url = f"{self.api_url}{path}"
        try:
            resp = await client.request(method, url, json=body, headers=self._headers())
        except httpx.TransportError:
            raise
        except httpx.HTTPError as e:
            raise MevShareError(
                code=ErrorCode.MEV_SHARE_REQUEST_FAILED,
                message=f"MEV-Share request failed: {e}",
                details={"url": url},
            )

        if resp.status_code >= 400:
            raise MevShareError(
                code=ErrorCode.MEV_SHARE_REQUEST_FAILED,
                message=f"MEV-Share returned HTTP {resp.status_code}",
                details={"url": url, "body": resp.text[:200]},
            )
        try:
            return resp.json()
        except ValueError:
            raise MevShareError(
                code=ErrorCode.MEV_SHARE_REQUEST_FAILED,
                message="MEV-Share returned a non-JSON body",
                details={"url": url},
            )

    async def _call(self, method: str, path: str, body: Optional[dict] = None, retry: bool = False) -> Dict[str, Any]:
        """One relay call. Transport failures are retried only when retry=True."""
        policy = self.retry_policy if retry else NO_RETRY
        try:
            return await call_with_retry(
                self._request, method, path, body,
                policy=policy,
                retry_on=(httpx.TransportError,),
            )
        except httpx.TransportError as e:
            raise MevShareError(
                code=ErrorCode.MEV_SHARE_REQUEST_FAILED,
                message=f"MEV-Share unreachable: {type(e).__name__}",
                details={"path": path},
            )

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def send_private_transaction(
        self,
        raw_tx: str,
        hints: PrivacyHints = PrivacyHints(),
    ) -> str:
        """Submit a signed transaction for private inclusion. Returns its hash."""
        self._require_enabled()
        result = await self._call(
            "POST",
            "/api/v1/tx",
            {"tx": raw_tx, "preferences": asdict(hints)},
        )
        tx_hash = result.get("txHash")
        if not tx_hash:
            raise MevShareError(
                code=ErrorCode.MEV_SHARE_REQUEST_FAILED,
                message="MEV-Share response has no txHash",
                details={"response": result},
            )
        logger.info(
            "Private transaction accepted",
            extra={"context": {"tx_hash": tx_hash}},
        )
        return tx_hash

    @staticmethod
    def build_bundle(raw_txs: List[str], target_block: int) -> Dict[str, Any]:
        """Bundle body: ordered transactions that must land in target_block."""
        return {
            "version": BUNDLE_VERSION,
            "inclusion": {"block": hex(target_block)},
            "body": [{"tx": tx, "canRevert": False} for tx in raw_txs],
            "validity": {},
        }

    async def send_bundle(self, raw_txs: List[str], target_block: int) -> str:
        """Submit a bundle. Returns the bundle hash."""
        self._require_enabled()
        result = await self._call("POST", "/api/v1/bundle", self.build_bundle(raw_txs, target_block))
        bundle_hash = result.get("bundleHash")
        if not bundle_hash:
            raise MevShareError(
                code=ErrorCode.MEV_SHARE_REQUEST_FAILED,
                message="MEV-Share response has no bundleHash",
                details={"response": result},
            )
        logger.info(
            f"Bundle accepted for block {target_block}",
            extra={"context": {"bundle_hash": bundle_hash, "txs": len(raw_txs)}},
        )
        return bundle_hash

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_bundle_status(self, bundle_id: str) -> str:
        self._require_enabled()
        result = await self._call("GET", f"/api/v1/bundle/status/{bundle_id}", retry=True)
        return str(result.get("status", "unknown"))

    async def get_bundle_stats(self) -> BundleStats:
        self._require_enabled()
        result = await self._call("GET", "/api/v1/bundle/stats", retry=True)
        return BundleStats(
            total_bundles=int(result.get("totalBundles", 0)),
            total_transactions=int(result.get("totalTransactions", 0)),
        )

    async def ping(self) -> bool:
        """True if the relay answers the stats endpoint."""
        try:
            await self.get_bundle_stats()
            return True
        except MevShareError as e:
            logger.warning(f"MEV-Share ping failed: {e}")
            return False

    # =========================================================================
    # EVENT STREAM
    # =========================================================================

    async def stream_transaction_events(self) -> AsyncIterator[Dict[str, Any]]:
        """
        Pending-transaction hints as they arrive.

        Ends when the server closes the stream; reconnecting is the caller's
        job. Malformed event lines are skipped.
        """
        self._require_enabled()
        client = await self._get_client()
        headers = {**self._headers(), "Accept": "text/event-stream"}
        url = f"{self.api_url}/api/v1/events/transaction"

        try:
            async with client.stream("GET", url, headers=headers, timeout=None) as resp:
                if resp.status_code >= 400:
                    raise MevShareError(
                        code=ErrorCode.MEV_SHARE_REQUEST_FAILED,
                        message=f"Event stream returned HTTP {resp.status_code}",
                        details={"url": url},
                    )
                async for line in resp.aiter_lines():
                    if not line.startswith(SSE_DATA_PREFIX):
                        continue
                    try:
                        yield json.loads(line[len(SSE_DATA_PREFIX):])
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed event: {line[:80]}")
        except httpx.TransportError as e:
            raise MevShareError(
                code=ErrorCode.MEV_SHARE_REQUEST_FAILED,
                message=f"Event stream dropped: {type(e).__name__}",
                details={"url": url},
            )
