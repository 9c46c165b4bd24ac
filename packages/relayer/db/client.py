"""
Redis 单例客户端 + nonce 计数器存储
只用原子命令：INCR / GET / SET / SET NX
"""
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from config import REDIS_URL
from relay.errors import ConfigurationError, NonceStoreUnavailable

_client: redis.Redis | None = None


def get_redis() -> redis.Redis:
    global _client
    if _client is None:
        if not REDIS_URL:
            raise ConfigurationError("REDIS_URL must be set")
        _client = redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
    return _client


class RedisCounterStore:
    def __init__(self, client: redis.Redis | None = None):
        self._client = client

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    async def increment(self, key: str) -> int:
        try:
            return int(await self.client.incr(key))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise NonceStoreUnavailable(f"Counter store unreachable: {e}") from e

    async def get(self, key: str) -> int | None:
        try:
            value = await self.client.get(key)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise NonceStoreUnavailable(f"Counter store unreachable: {e}") from e
        return int(value) if value is not None else None

    async def set(self, key: str, value: int) -> None:
        try:
            await self.client.set(key, value)
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise NonceStoreUnavailable(f"Counter store unreachable: {e}") from e

    async def set_if_absent(self, key: str, value: int) -> bool:
        try:
            return bool(await self.client.set(key, value, nx=True))
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise NonceStoreUnavailable(f"Counter store unreachable: {e}") from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
