"""
Relayer nonce 分配 — Redis 原子计数器
计数器存的是「下一个要分配的 sequence number」，与 bundler 自己的 nonce 无关，
给需要显式预留 nonce 的调用方用。

冷启动：计数器不存在时读链上 pending nonce，SET NX 建立基线后再 INCR，
所以第一次分配一定等于链上值，之后只走 Redis。
"""
import logging
from typing import Awaitable, Callable, Protocol

from web3 import Web3

from chain.client import QueryClient
from config import NONCE_KEY_PREFIX

logger = logging.getLogger("relayer.nonce")


class CounterStore(Protocol):
    async def increment(self, key: str) -> int: ...

    async def get(self, key: str) -> int | None: ...

    async def set(self, key: str, value: int) -> None: ...

    async def set_if_absent(self, key: str, value: int) -> bool: ...


class NonceAllocator:
    def __init__(
        self,
        store: CounterStore,
        query_client: Callable[[], Awaitable[QueryClient]],
        key_prefix: str = NONCE_KEY_PREFIX,
    ):
        self.store = store
        self._query_client = query_client
        self.key_prefix = key_prefix

    def _key(self, account: str) -> str:
        # 同一地址不同大小写共用一个计数器
        if not isinstance(account, str) or not Web3.is_address(account.lower()):
            raise ValueError(f"Invalid account address: {account}")
        return f"{self.key_prefix}{Web3.to_checksum_address(account)}"

    async def _chain_nonce(self, account: str) -> int:
        query = await self._query_client()
        return await query.get_transaction_count(account, "pending")

    async def allocate_next(self, account: str) -> int:
        key = self._key(account)
        if await self.store.get(key) is None:
            chain_nonce = await self._chain_nonce(account)
            if await self.store.set_if_absent(key, chain_nonce):
                logger.info(f"Nonce baseline for {account}: {chain_nonce}")
        # INCR 返回新值，分配的是新值 - 1
        return await self.store.increment(key) - 1

    async def get_current(self, account: str) -> int:
        """不写计数器；未初始化时返回链上 pending nonce"""
        value = await self.store.get(self._key(account))
        if value is None:
            return await self._chain_nonce(account)
        return value

    async def reset(self, account: str) -> int:
        chain_nonce = await self._chain_nonce(account)
        await self.store.set(self._key(account), chain_nonce)
        logger.info(f"Reset nonce for {account} to {chain_nonce}")
        return chain_nonce
