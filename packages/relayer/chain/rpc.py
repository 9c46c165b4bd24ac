"""
JSON-RPC over HTTP — 每个 endpoint 一个 keep-alive httpx.AsyncClient
transport 层只重试网络错误 / 5xx / 429，RPC error 原样抛给上层归类
"""
import asyncio
import itertools
import logging
from typing import Any

import httpx

logger = logging.getLogger("relayer.chain.rpc")

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class RpcError(RuntimeError):
    """节点 / 服务返回了 JSON-RPC error"""

    def __init__(self, message: str, *, code: int | None = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class RpcTransportError(RpcError):
    """连接失败、超时或 HTTP 层错误"""


class JsonRpcTransport:
    def __init__(
        self,
        url: str,
        *,
        timeout: float,
        retry_count: int = 1,
        retry_delay: float = 0.05,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.retry_count = retry_count
        self.retry_delay = retry_delay
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers=headers,
            transport=transport,
            limits=httpx.Limits(keepalive_expiry=30),
        )

    async def request(self, method: str, params: list) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        attempt = 0
        while True:
            try:
                resp = await self._client.post(self.url, json=payload)
                if resp.status_code in _RETRYABLE_STATUS:
                    raise RpcTransportError(f"HTTP {resp.status_code} from {method}", code=resp.status_code)
                resp.raise_for_status()
                data = resp.json()
                break
            except (httpx.TransportError, RpcTransportError) as e:
                if attempt >= self.retry_count:
                    if isinstance(e, RpcTransportError):
                        raise
                    raise RpcTransportError(f"{method} transport error: {e}") from e
                attempt += 1
                logger.debug(f"{method} transport retry {attempt}/{self.retry_count}: {e}")
                await asyncio.sleep(self.retry_delay)
            except httpx.HTTPStatusError as e:
                raise RpcTransportError(
                    f"HTTP {e.response.status_code} from {method}",
                    code=e.response.status_code,
                ) from e
            except ValueError as e:
                raise RpcTransportError(f"{method} returned invalid JSON") from e

        if not isinstance(data, dict):
            raise RpcTransportError(f"{method} returned an invalid JSON-RPC payload")
        if data.get("error"):
            error = data["error"]
            if not isinstance(error, dict):
                raise RpcError(str(error))
            logger.debug(f"RPC error ({method}): {error}")
            raise RpcError(
                str(error.get("message") or "RPC error"),
                code=error.get("code"),
                data=error.get("data"),
            )
        return data.get("result")

    async def aclose(self) -> None:
        await self._client.aclose()
