"""
Relayer — REST API 端点
错误映射: fatal → 422, transient / 超时 / 重试耗尽 / Redis 不可达 → 503, 配置缺失 → 500
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_dispatcher, get_nonce_allocator, require_api_key
from api.models import (
    BatchRelayRequest,
    NonceResponse,
    ParallelRelayRequest,
    ReceiptResponse,
    RelayRequest,
)
from chain.rpc import RpcError
from config import SUBMIT_MAX_RETRIES
from relay.dispatch import Dispatcher
from relay.errors import (
    ConfigurationError,
    FatalExecutionError,
    NonceStoreUnavailable,
    RelayError,
    RetriesExhausted,
    TransientSubmissionError,
)
from relay.nonce import NonceAllocator

logger = logging.getLogger("relayer.api")
router = APIRouter(prefix="/v1", dependencies=[Depends(require_api_key)])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, FatalExecutionError):
        return HTTPException(status_code=422, detail={"error": e.kind.value, "message": str(e)})
    if isinstance(e, (RetriesExhausted, TransientSubmissionError, NonceStoreUnavailable, RpcError)):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=500, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# ===== Relay =====

@router.post("/relay", response_model=ReceiptResponse)
async def relay_endpoint(req: RelayRequest, dispatcher: Dispatcher = Depends(get_dispatcher)):
    max_retries = req.max_retries if req.max_retries is not None else SUBMIT_MAX_RETRIES
    try:
        receipt = await dispatcher.send_single(req.to_descriptor(), max_retries)
    except (RelayError, ValueError) as e:
        raise _http_error(e)
    return ReceiptResponse.from_receipt(receipt)


@router.post("/relay/parallel")
async def relay_parallel_endpoint(req: ParallelRelayRequest, dispatcher: Dispatcher = Depends(get_dispatcher)):
    try:
        first, second = await dispatcher.send_parallel(req.first.to_descriptor(), req.second.to_descriptor())
    except (RelayError, ValueError) as e:
        raise _http_error(e)
    return {
        "first": ReceiptResponse.from_receipt(first),
        "second": ReceiptResponse.from_receipt(second),
    }


@router.post("/relay/batch", response_model=ReceiptResponse)
async def relay_batch_endpoint(req: BatchRelayRequest, dispatcher: Dispatcher = Depends(get_dispatcher)):
    try:
        receipt = await dispatcher.send_batched([c.to_descriptor() for c in req.calls])
    except (RelayError, ValueError) as e:
        raise _http_error(e)
    return ReceiptResponse.from_receipt(receipt)


# ===== Nonce =====

@router.get("/nonce/{account}", response_model=NonceResponse)
async def nonce_endpoint(account: str, allocator: NonceAllocator = Depends(get_nonce_allocator)):
    try:
        return NonceResponse(account=account, nonce=await allocator.get_current(account))
    except (RelayError, RpcError, ValueError) as e:
        raise _http_error(e)


@router.post("/nonce/{account}/allocate", response_model=NonceResponse)
async def allocate_nonce_endpoint(account: str, allocator: NonceAllocator = Depends(get_nonce_allocator)):
    try:
        return NonceResponse(account=account, nonce=await allocator.allocate_next(account))
    except (RelayError, RpcError, ValueError) as e:
        raise _http_error(e)


@router.post("/nonce/{account}/reset", response_model=NonceResponse)
async def reset_nonce_endpoint(account: str, allocator: NonceAllocator = Depends(get_nonce_allocator)):
    try:
        return NonceResponse(account=account, nonce=await allocator.reset(account))
    except (RelayError, RpcError, ValueError) as e:
        raise _http_error(e)
