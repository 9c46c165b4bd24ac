"""
FastAPI 依赖注入 — API key 校验 + 从 app.state 取 composition root
"""
import hmac

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import RELAYER_API_KEY
from relay.dispatch import Dispatcher
from relay.nonce import NonceAllocator

_bearer = HTTPBearer()


async def require_api_key(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(_bearer),
) -> None:
    expected = getattr(request.app.state, "api_key", None) or RELAYER_API_KEY
    if not expected:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Relayer API key not configured")
    if not hmac.compare_digest(creds.credentials, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_nonce_allocator(request: Request) -> NonceAllocator:
    return request.app.state.nonce_allocator
