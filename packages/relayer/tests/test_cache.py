"""Tests for the client cache and warmup."""
from __future__ import annotations

import asyncio

import pytest

from chain.client import QueryClient
from conftest import mock_rpc
from relay.cache import ClientCache
from relay.errors import ConfigurationError
from relay.warmup import warmup


class CountingCache(ClientCache):
    """Builders return plain objects and count constructions."""

    def __init__(self, fail_on: str | None = None, **kwargs):
        kwargs.setdefault("private_key", "0x" + "11" * 32)
        super().__init__(**kwargs)
        self.builds: dict[str, int] = {}
        self.fail_on = fail_on

    async def _build(self, name: str):
        self.builds[name] = self.builds.get(name, 0) + 1
        await asyncio.sleep(0.01)
        if name == self.fail_on:
            raise ConfigurationError(f"{name} failed")
        return object()

    async def _build_query_client(self):
        return await self._build("query_client")

    async def _build_paymaster_client(self):
        return await self._build("paymaster_client")

    async def _build_sponsored_account(self):
        await self.get_query_client()
        return await self._build("sponsored_account")

    async def _build_bundling_client(self):
        await self.get_sponsored_account()
        await self.get_paymaster_client()
        return await self._build("bundling_client")


class TestClientCache:
    @pytest.mark.asyncio
    async def test_same_instance_returned(self):
        cache = CountingCache()
        first = await cache.get_query_client()
        second = await cache.get_query_client()
        assert first is second
        assert cache.builds == {"query_client": 1}

    @pytest.mark.asyncio
    async def test_concurrent_first_access_builds_once(self):
        cache = CountingCache()
        clients = await asyncio.gather(*(cache.get_bundling_client() for _ in range(10)))
        assert all(c is clients[0] for c in clients)
        assert cache.builds == {
            "query_client": 1,
            "sponsored_account": 1,
            "paymaster_client": 1,
            "bundling_client": 1,
        }

    @pytest.mark.asyncio
    async def test_missing_owner_key(self):
        cache = ClientCache(
            query_rpc_url="http://query",
            paymaster_rpc_url="http://paymaster",
            bundler_rpc_url="http://bundler",
            private_key="",
        )
        with pytest.raises(ConfigurationError):
            await cache.get_sponsored_account()

    @pytest.mark.asyncio
    async def test_malformed_owner_key_is_configuration_error(self, monkeypatch):
        cache = ClientCache(
            query_rpc_url="http://query",
            paymaster_rpc_url="http://paymaster",
            bundler_rpc_url="http://bundler",
            private_key="0xnotakey",
        )

        async def build_query_client():
            return QueryClient(mock_rpc({}))

        monkeypatch.setattr(cache, "_build_query_client", build_query_client)
        with pytest.raises(ConfigurationError):
            await cache.get_sponsored_account()

    @pytest.mark.asyncio
    async def test_missing_endpoint(self, monkeypatch):
        monkeypatch.setattr("relay.cache.PAYMASTER_RPC_URL", "")
        cache = ClientCache(private_key="0x" + "11" * 32)
        with pytest.raises(ConfigurationError):
            await cache.get_paymaster_client()

    @pytest.mark.asyncio
    async def test_failed_build_is_not_cached(self):
        cache = CountingCache(fail_on="paymaster_client")
        with pytest.raises(ConfigurationError):
            await cache.get_paymaster_client()
        cache.fail_on = None
        assert await cache.get_paymaster_client() is not None
        assert cache.builds["paymaster_client"] == 2


class TestWarmup:
    @pytest.mark.asyncio
    async def test_warmup_builds_everything_once(self):
        cache = CountingCache()
        await warmup(cache)
        assert set(cache.builds) == {"query_client", "paymaster_client", "sponsored_account", "bundling_client"}
        assert all(count == 1 for count in cache.builds.values())

    @pytest.mark.asyncio
    async def test_warmup_raises_first_failure(self):
        cache = CountingCache(fail_on="query_client")
        with pytest.raises(ConfigurationError, match="query_client failed"):
            await warmup(cache)
