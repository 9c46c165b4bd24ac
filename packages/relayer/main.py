"""
Relayer — FastAPI 微服务入口
lifespan 里组装 client cache / nonce allocator / pipeline / dispatcher，并预热 client
"""
import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.routes import router
from config import PORT
from db.client import RedisCounterStore
from relay.cache import ClientCache
from relay.dispatch import Dispatcher
from relay.nonce import NonceAllocator
from relay.pipeline import SubmissionPipeline
from relay.warmup import warmup

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger("relayer")


def build_app_state(app: FastAPI, cache: ClientCache, store) -> None:
    app.state.cache = cache
    app.state.counter_store = store
    app.state.nonce_allocator = NonceAllocator(store, cache.get_query_client)
    app.state.dispatcher = Dispatcher(SubmissionPipeline(cache))


@asynccontextmanager
async def lifespan(app: FastAPI):
    if not hasattr(app.state, "dispatcher"):
        build_app_state(app, ClientCache(), RedisCounterStore())
    try:
        await warmup(app.state.cache)
    except Exception as e:
        # 预热失败不影响启动，首个请求会重新构造
        logger.warning(f"Warmup failed: {e}")
    logger.info("Relayer service started")
    yield
    await app.state.cache.aclose()
    await app.state.counter_store.aclose()
    logger.info("Relayer service shutting down")


app = FastAPI(
    title="Relayer",
    description="Sponsored UserOperation relay — single, parallel and batched submission",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "relayer"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT, log_level="info")
