"""Tests for the JSON-RPC transport and query client."""
from __future__ import annotations

import httpx
import pytest
from eth_abi import encode

from chain.client import QueryClient
from chain.rpc import JsonRpcTransport, RpcError, RpcTransportError
from conftest import SENDER, RpcFailure, mock_rpc


def _flaky_transport(statuses: list[int], calls: list[int], retry_count: int = 1) -> JsonRpcTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        status = statuses.pop(0) if statuses else 200
        if status != 200:
            return httpx.Response(status)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x14a34"})

    return JsonRpcTransport(
        "http://rpc.test",
        timeout=1,
        retry_count=retry_count,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )


class TestJsonRpcTransport:
    @pytest.mark.asyncio
    async def test_retries_server_error_once(self):
        calls: list[int] = []
        transport = _flaky_transport([503], calls)
        assert await transport.request("eth_chainId", []) == "0x14a34"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_retry_count(self):
        calls: list[int] = []
        transport = _flaky_transport([503, 503, 503], calls)
        with pytest.raises(RpcTransportError) as exc_info:
            await transport.request("eth_chainId", [])
        assert exc_info.value.code == 503
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls: list[int] = []
        transport = _flaky_transport([400], calls)
        with pytest.raises(RpcTransportError):
            await transport.request("eth_chainId", [])
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_connect_error_is_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = JsonRpcTransport(
            "http://rpc.test", timeout=1, retry_count=1, retry_delay=0,
            transport=httpx.MockTransport(handler),
        )
        with pytest.raises(RpcTransportError):
            await transport.request("eth_chainId", [])

    @pytest.mark.asyncio
    async def test_rpc_error_is_not_retried(self):
        log: list[dict] = []
        transport = mock_rpc({"eth_call": RpcFailure("execution reverted", 3)}, log, retry_count=2)
        with pytest.raises(RpcError) as exc_info:
            await transport.request("eth_call", [])
        assert not isinstance(exc_info.value, RpcTransportError)
        assert exc_info.value.code == 3
        assert len(log) == 1

    @pytest.mark.asyncio
    async def test_request_ids_increase(self):
        log: list[dict] = []
        transport = mock_rpc({"eth_chainId": "0x1"}, log)
        await transport.request("eth_chainId", [])
        await transport.request("eth_chainId", [])
        assert [b["id"] for b in log] == [1, 2]


class TestQueryClient:
    @pytest.mark.asyncio
    async def test_pending_transaction_count(self):
        log: list[dict] = []
        query = QueryClient(mock_rpc({"eth_getTransactionCount": "0x2a"}, log))
        assert await query.get_transaction_count(SENDER) == 42
        assert log[0]["params"][1] == "pending"

    @pytest.mark.asyncio
    async def test_chain_id(self):
        query = QueryClient(mock_rpc({"eth_chainId": "0x14a34"}))
        assert await query.chain_id() == 84532

    @pytest.mark.asyncio
    async def test_entrypoint_nonce(self):
        log: list[dict] = []
        result = "0x" + encode(["uint256"], [(5 << 64) | 3]).hex()
        query = QueryClient(mock_rpc({"eth_call": result}, log))
        assert await query.get_entrypoint_nonce(SENDER, key=5) == (5 << 64) | 3
        assert log[0]["params"][0]["to"] == query.entrypoint
