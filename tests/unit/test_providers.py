"""
tests/unit/test_providers.py - JSON-RPC provider failover and retry.

Uses httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from chains.providers import RPCProvider
from core.exceptions import ErrorCode, InfraError, RPCResponseError
from core.retry import RetryPolicy

PRIMARY = "http://primary.test"
BACKUP = "http://backup.test"


def _provider(handler, urls=(PRIMARY, BACKUP), policy=None) -> RPCProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs = {"retry_policy": policy} if policy else {}
    return RPCProvider(chain_id=1, rpc_urls=list(urls), client=client, **kwargs)


def _result(request: httpx.Request, result) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


class TestRPCProvider:
    @pytest.mark.asyncio
    async def test_first_endpoint_answers(self):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            return _result(request, "0x10")

        provider = _provider(handler)
        block, _ = await provider.get_block_number()
        assert block == 16
        assert seen == ["primary.test"]
        await provider.close()

    @pytest.mark.asyncio
    async def test_failover_to_backup(self):
        def handler(request):
            if request.url.host == "primary.test":
                raise httpx.ConnectError("refused", request=request)
            return _result(request, "0x1")

        provider = _provider(handler)
        response = await provider.call("eth_chainId")
        assert response.endpoint_used == BACKUP
        assert provider.stats[PRIMARY].failed_requests == 1
        assert provider.stats[BACKUP].successful_requests == 1

    @pytest.mark.asyncio
    async def test_all_endpoints_down_raises_infra_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = _provider(handler)
        with pytest.raises(InfraError) as exc_info:
            await provider.call("eth_blockNumber")
        assert exc_info.value.code == ErrorCode.INFRA_RPC_ERROR
        assert exc_info.value.details["endpoints_tried"] == 2

    @pytest.mark.asyncio
    async def test_timeout_code(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = _provider(handler, urls=(PRIMARY,))
        with pytest.raises(InfraError) as exc_info:
            await provider.call("eth_blockNumber")
        assert exc_info.value.code == ErrorCode.INFRA_RPC_TIMEOUT

    @pytest.mark.asyncio
    async def test_rpc_error_object_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "jsonrpc": "2.0",
                "id": body["id"],
                "error": {"code": 3, "message": "execution reverted"},
            })

        policy = RetryPolicy(max_attempts=3, initial_backoff=0.0, max_backoff=0.0)
        provider = _provider(handler, urls=(PRIMARY,), policy=policy)
        with pytest.raises(RPCResponseError, match="execution reverted"):
            await provider.eth_call("0x" + "11" * 20, "0x")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_failure_retried_then_succeeds(self):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) < 3:
                raise httpx.ConnectError("refused", request=request)
            return _result(request, "0x5")

        policy = RetryPolicy(max_attempts=3, initial_backoff=0.0, max_backoff=0.0)
        provider = _provider(handler, urls=(PRIMARY,), policy=policy)
        assert await provider.get_transaction_count("0x" + "11" * 20) == 5
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_no_endpoints(self):
        provider = RPCProvider(chain_id=1, rpc_urls=["", ""])
        with pytest.raises(InfraError):
            await provider.call("eth_blockNumber")

    @pytest.mark.asyncio
    async def test_block_by_number_encodes_hex(self):
        params = []

        def handler(request):
            params.append(json.loads(request.content)["params"])
            return _result(request, None)

        provider = _provider(handler)
        assert await provider.get_block_by_number(255, True) is None
        assert params[0] == ["0xff", True]

    @pytest.mark.asyncio
    async def test_stats_summary(self):
        provider = _provider(lambda request: _result(request, "0x1"))
        await provider.get_chain_id()
        summary = provider.get_stats_summary()
        assert summary[PRIMARY]["success_rate"] == 1.0
        assert summary[BACKUP]["total_requests"] == 0
