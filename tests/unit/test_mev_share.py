"""
tests/unit/test_mev_share.py - MEV-Share relay client over a mock transport.
"""

import json

import httpx
import pytest

from core.exceptions import ErrorCode, MevShareError
from core.retry import RetryPolicy
from execution.mev_share import BundleStats, MevShareClient, PrivacyHints

RELAY = "https://relay.test"
RAW_TX = "0x02f8" + "00" * 20


def _client(handler, enabled=True, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MevShareClient(RELAY, api_key="sig-key", enabled=enabled, client=http, **kwargs)


class TestDisabled:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda c: c.send_private_transaction(RAW_TX),
        lambda c: c.send_bundle([RAW_TX], 100),
        lambda c: c.get_bundle_status("0x1"),
        lambda c: c.get_bundle_stats(),
    ])
    async def test_every_call_refused(self, call):
        requests = []
        client = _client(lambda r: requests.append(r), enabled=False)
        with pytest.raises(MevShareError) as exc_info:
            await call(client)
        assert exc_info.value.code == ErrorCode.MEV_SHARE_DISABLED
        assert exc_info.value.message == "MEV-Share is not enabled"
        assert requests == []

    @pytest.mark.asyncio
    async def test_ping_false_when_disabled(self):
        assert await _client(lambda r: httpx.Response(200, json={}), enabled=False).ping() is False


class TestSubmission:
    @pytest.mark.asyncio
    async def test_private_transaction_shape(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"txHash": "0x" + "dd" * 32})

        tx_hash = await _client(handler).send_private_transaction(RAW_TX)
        assert tx_hash == "0x" + "dd" * 32
        assert seen["method"] == "POST"
        assert seen["path"] == "/api/v1/tx"
        assert seen["headers"]["X-Flashbots-Signature"] == "sig-key"
        assert seen["body"]["tx"] == RAW_TX
        assert seen["body"]["preferences"]["calldata"] is False
        assert seen["body"]["preferences"]["hash"] is True

    @pytest.mark.asyncio
    async def test_custom_hints(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"txHash": "0x1"})

        await _client(handler).send_private_transaction(RAW_TX, PrivacyHints(logs=False))
        assert bodies[0]["preferences"]["logs"] is False

    @pytest.mark.asyncio
    async def test_missing_hash_is_error(self):
        with pytest.raises(MevShareError):
            await _client(lambda r: httpx.Response(200, json={})).send_private_transaction(RAW_TX)

    @pytest.mark.asyncio
    async def test_http_error(self):
        with pytest.raises(MevShareError) as exc_info:
            await _client(lambda r: httpx.Response(500, text="boom")).send_private_transaction(RAW_TX)
        assert exc_info.value.code == ErrorCode.MEV_SHARE_REQUEST_FAILED

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        with pytest.raises(MevShareError):
            await _client(lambda r: httpx.Response(200, text="ok")).send_private_transaction(RAW_TX)

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(MevShareError) as exc_info:
            await _client(handler).send_private_transaction(RAW_TX)
        assert exc_info.value.code == ErrorCode.MEV_SHARE_REQUEST_FAILED

    def test_bundle_body(self):
        bundle = MevShareClient.build_bundle([RAW_TX, RAW_TX], 255)
        assert bundle == {
            "version": "v0.1",
            "inclusion": {"block": "0xff"},
            "body": [{"tx": RAW_TX, "canRevert": False}, {"tx": RAW_TX, "canRevert": False}],
            "validity": {},
        }

    @pytest.mark.asyncio
    async def test_send_bundle(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"bundleHash": "0xbundle"})

        assert await _client(handler).send_bundle([RAW_TX], 100) == "0xbundle"
        assert seen["path"] == "/api/v1/bundle"
        assert seen["body"]["inclusion"]["block"] == "0x64"


class TestQueries:
    @pytest.mark.asyncio
    async def test_bundle_status(self):
        def handler(request):
            assert request.url.path == "/api/v1/bundle/status/0xabc"
            return httpx.Response(200, json={"status": "included"})

        assert await _client(handler).get_bundle_status("0xabc") == "included"

    @pytest.mark.asyncio
    async def test_bundle_stats_and_ping(self):
        client = _client(lambda r: httpx.Response(200, json={"totalBundles": 4, "totalTransactions": 9}))
        assert await client.get_bundle_stats() == BundleStats(total_bundles=4, total_transactions=9)
        assert await client.ping() is True

    @pytest.mark.asyncio
    async def test_queries_retry_transport_errors(self):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) == 1:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"status": "pending"})

        client = _client(handler, retry_policy=RetryPolicy(max_attempts=2, initial_backoff=0.0, max_backoff=0.0))
        assert await client.get_bundle_status("0x1") == "pending"
        assert len(calls) == 2


class TestEventStream:
    @pytest.mark.asyncio
    async def test_parses_data_lines(self):
        stream = (
            ": keep-alive\n"
            'data: {"hash": "0x01", "logs": []}\n'
            "\n"
            "data: {broken\n"
            'data: {"hash": "0x02"}\n'
        )

        def handler(request):
            assert request.headers["Accept"] == "text/event-stream"
            assert request.url.path == "/api/v1/events/transaction"
            return httpx.Response(200, text=stream)

        events = [e async for e in _client(handler).stream_transaction_events()]
        assert [e["hash"] for e in events] == ["0x01", "0x02"]

    @pytest.mark.asyncio
    async def test_stream_http_error(self):
        with pytest.raises(MevShareError):
            async for _ in _client(lambda r: httpx.Response(503)).stream_transaction_events():
                pass
