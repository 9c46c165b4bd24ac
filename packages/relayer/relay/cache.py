"""
Client cache — 进程内唯一的 query / paymaster / bundler client + sponsored account
首次访问时构造（single-flight），之后只读
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from chain.client import QueryClient
from chain.rpc import JsonRpcTransport
from config import (
    BUNDLER_RPC_URL,
    CHAIN_ID,
    ENTRYPOINT_ADDRESS,
    PAYMASTER_RPC_URL,
    PAYMASTER_TIMEOUT,
    QUERY_RPC_URL,
    RELAYER_PRIVATE_KEY,
    RPC_TIMEOUT,
    TRANSPORT_RETRY_COUNT,
    TRANSPORT_RETRY_DELAY,
)
from relay.errors import ConfigurationError
from userop.account import SponsoredAccount, to_sponsored_account
from userop.bundler import BundlerClient
from userop.paymaster import PaymasterClient

logger = logging.getLogger("relayer.cache")


class ClientCache:
    def __init__(
        self,
        *,
        query_rpc_url: str | None = None,
        paymaster_rpc_url: str | None = None,
        bundler_rpc_url: str | None = None,
        private_key: str | None = None,
        chain_id: int = CHAIN_ID,
        entrypoint: str = ENTRYPOINT_ADDRESS,
    ):
        self.query_rpc_url = query_rpc_url or QUERY_RPC_URL
        self.paymaster_rpc_url = paymaster_rpc_url or PAYMASTER_RPC_URL
        self.bundler_rpc_url = bundler_rpc_url or BUNDLER_RPC_URL
        self.private_key = private_key if private_key is not None else RELAYER_PRIVATE_KEY
        self.chain_id = chain_id
        self.entrypoint = entrypoint
        self._instances: dict[str, Any] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def _get_or_create(self, name: str, build: Callable[[], Awaitable[Any]]) -> Any:
        if name in self._instances:
            return self._instances[name]
        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            if name not in self._instances:
                self._instances[name] = await build()
                logger.debug(f"Built {name}")
        return self._instances[name]

    @staticmethod
    def _require(value: str, name: str) -> str:
        if not value:
            raise ConfigurationError(f"{name} not configured")
        return value

    # ── builders ──

    async def _build_query_client(self) -> QueryClient:
        transport = JsonRpcTransport(
            self._require(self.query_rpc_url, "QUERY_RPC_URL"),
            timeout=RPC_TIMEOUT,
            retry_count=TRANSPORT_RETRY_COUNT,
            retry_delay=TRANSPORT_RETRY_DELAY,
        )
        client = QueryClient(transport, self.entrypoint)
        remote_chain_id = await client.chain_id()
        if remote_chain_id != self.chain_id:
            logger.warning(f"Query RPC chain id {remote_chain_id} != configured {self.chain_id}")
        return client

    async def _build_paymaster_client(self) -> PaymasterClient:
        transport = JsonRpcTransport(
            self._require(self.paymaster_rpc_url, "PAYMASTER_RPC_URL"),
            timeout=PAYMASTER_TIMEOUT,
            retry_count=TRANSPORT_RETRY_COUNT,
            retry_delay=TRANSPORT_RETRY_DELAY,
        )
        return PaymasterClient(transport, self.entrypoint, self.chain_id)

    async def _build_sponsored_account(self) -> SponsoredAccount:
        if not self.private_key:
            raise ConfigurationError("RELAYER_PRIVATE_KEY not configured")
        query = await self.get_query_client()
        return await to_sponsored_account(
            query,
            self.private_key,
            entrypoint=self.entrypoint,
            chain_id=self.chain_id,
        )

    async def _build_bundling_client(self) -> BundlerClient:
        transport = JsonRpcTransport(
            self._require(self.bundler_rpc_url, "BUNDLER_RPC_URL"),
            timeout=RPC_TIMEOUT,
            retry_count=TRANSPORT_RETRY_COUNT,
            retry_delay=TRANSPORT_RETRY_DELAY,
        )
        account = await self.get_sponsored_account()
        query = await self.get_query_client()
        paymaster = await self.get_paymaster_client()
        return BundlerClient(transport, account, query, paymaster)

    # ── 公开 API ──

    async def get_query_client(self) -> QueryClient:
        return await self._get_or_create("query_client", self._build_query_client)

    async def get_paymaster_client(self) -> PaymasterClient:
        return await self._get_or_create("paymaster_client", self._build_paymaster_client)

    async def get_sponsored_account(self) -> SponsoredAccount:
        return await self._get_or_create("sponsored_account", self._build_sponsored_account)

    async def get_bundling_client(self) -> BundlerClient:
        return await self._get_or_create("bundling_client", self._build_bundling_client)

    async def aclose(self) -> None:
        """进程退出时关闭连接"""
        for name in ("bundling_client", "paymaster_client", "query_client"):
            client = self._instances.pop(name, None)
            if client is not None:
                await client.aclose()
        self._instances.clear()
