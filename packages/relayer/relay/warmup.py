"""
启动预热 — 并发构造所有缓存 client，避免第一个请求冷启动
"""
import asyncio
import logging
import time

from relay.cache import ClientCache

logger = logging.getLogger("relayer.warmup")


async def warmup(cache: ClientCache) -> None:
    logger.info("Warming up clients...")
    start = time.perf_counter()
    await asyncio.gather(
        cache.get_sponsored_account(),
        cache.get_bundling_client(),
        cache.get_query_client(),
        cache.get_paymaster_client(),
    )
    logger.info(f"Warmup complete: {(time.perf_counter() - start) * 1000:.1f}ms")
