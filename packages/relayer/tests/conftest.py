"""Shared fakes for relayer tests."""
from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest

from chain.rpc import JsonRpcTransport
from relay.errors import NonceStoreUnavailable
from relay.models import CallDescriptor, UserOperationReceipt

CONTRACT = "0x9B8af95247a68cE5dc38361D4A03f56bD8463D3f"
SENDER = "0x8ACE347a4d033af77512BC9ad52B118E4a247ea4"
TEST_PRIVATE_KEY = "0x" + "11" * 32


class FakeCounterStore:
    """In-memory counter store; every primitive is atomic on the event loop."""

    def __init__(self):
        self.values: dict[str, int] = {}
        self.unavailable = False

    async def _yield(self):
        await asyncio.sleep(0)
        if self.unavailable:
            raise NonceStoreUnavailable("Counter store unreachable")

    async def increment(self, key: str) -> int:
        await self._yield()
        self.values[key] = self.values.get(key, 0) + 1
        return self.values[key]

    async def get(self, key: str) -> int | None:
        await self._yield()
        return self.values.get(key)

    async def set(self, key: str, value: int) -> None:
        await self._yield()
        self.values[key] = value

    async def set_if_absent(self, key: str, value: int) -> bool:
        await self._yield()
        if key in self.values:
            return False
        self.values[key] = value
        return True

    async def aclose(self) -> None:
        pass


class FakeQueryClient:
    def __init__(self, pending_nonce: int = 0):
        self.pending_nonce = pending_nonce
        self.nonce_calls = 0

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        self.nonce_calls += 1
        await asyncio.sleep(0)
        return self.pending_nonce

    async def aclose(self) -> None:
        pass


class FakeBundler:
    """Records submissions; failures are queued exceptions consumed per send."""

    def __init__(self, receipt_delays: dict[str, float] | None = None):
        self.sent: list[list[dict]] = []
        self.send_failures: list[BaseException] = []
        self.always_fail: BaseException | None = None
        self.receipt_delays = receipt_delays or {}
        self.receipt_order: list[str] = []
        self.receipt_failures: dict[str, BaseException] = {}

    async def send_user_operation(self, calls: list[dict]) -> str:
        await asyncio.sleep(0)
        self.sent.append(calls)
        if self.always_fail is not None:
            raise self.always_fail
        if self.send_failures:
            raise self.send_failures.pop(0)
        return "0x" + f"{len(self.sent):064x}"

    async def wait_for_user_operation_receipt(self, user_op_hash: str, *, polling_interval: float, timeout: float):
        await asyncio.sleep(self.receipt_delays.get(user_op_hash, 0))
        self.receipt_order.append(user_op_hash)
        if user_op_hash in self.receipt_failures:
            raise self.receipt_failures[user_op_hash]
        return UserOperationReceipt(
            user_op_hash=user_op_hash,
            success=True,
            transaction_hash="0x" + user_op_hash[-8:].rjust(64, "a"),
        )

    async def aclose(self) -> None:
        pass


class FakeCache:
    def __init__(self, bundler: FakeBundler | None = None, query: FakeQueryClient | None = None):
        self.bundler = bundler or FakeBundler()
        self.query = query or FakeQueryClient()
        self.account = object()
        self.closed = False

    async def get_bundling_client(self):
        return self.bundler

    async def get_sponsored_account(self):
        return self.account

    async def get_query_client(self):
        return self.query

    async def get_paymaster_client(self):
        return object()

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def store() -> FakeCounterStore:
    return FakeCounterStore()


@pytest.fixture
def query() -> FakeQueryClient:
    return FakeQueryClient(pending_nonce=7)


@pytest.fixture
def bundler() -> FakeBundler:
    return FakeBundler()


@pytest.fixture
def cache(bundler, query) -> FakeCache:
    return FakeCache(bundler, query)


@pytest.fixture
def descriptor() -> CallDescriptor:
    return CallDescriptor(CONTRACT, "createTeamRelayer", (SENDER, "Test Team A", 1))


def make_descriptor(name: str, country: int = 1) -> CallDescriptor:
    return CallDescriptor(CONTRACT, "createTeamRelayer", (SENDER, name, country))


class RpcFailure:
    """Marker for a JSON-RPC error response."""

    def __init__(self, message: str, code: int = -32000):
        self.message = message
        self.code = code


def mock_rpc(
    responses: dict[str, Any],
    log: list[dict] | None = None,
    *,
    retry_count: int = 0,
) -> JsonRpcTransport:
    """JsonRpcTransport backed by httpx.MockTransport; values may be callables taking params."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if log is not None:
            log.append(body)
        result = responses[body["method"]]
        if callable(result):
            result = result(body["params"])
        if isinstance(result, RpcFailure):
            return httpx.Response(200, json={
                "jsonrpc": "2.0",
                "id": body["id"],
                "error": {"code": result.code, "message": result.message},
            })
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return JsonRpcTransport(
        "http://rpc.test",
        timeout=1,
        retry_count=retry_count,
        retry_delay=0,
        transport=httpx.MockTransport(handler),
    )
