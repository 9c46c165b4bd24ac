"""
Paymaster HTTP 客户端（ERC-7677 JSON-RPC）
  1. pm_getPaymasterStubData: gas 估算前的 stub paymaster 字段
  2. pm_getPaymasterData: 用最终 gas 值获取真实 paymaster 签名
paymaster 返回的 RPC error 一律视为拒绝 sponsor（fatal），网络错误为 transient
"""
import logging

from chain.rpc import JsonRpcTransport, RpcError, RpcTransportError
from relay.errors import ErrorKind, FatalExecutionError, TransientSubmissionError, match_fatal_kind
from userop.builder import clean_user_operation

logger = logging.getLogger("relayer.userop.paymaster")

PAYMASTER_FIELDS = (
    "paymaster",
    "paymasterData",
    "paymasterVerificationGasLimit",
    "paymasterPostOpGasLimit",
)


def _translate(method: str, e: RpcError) -> Exception:
    if isinstance(e, RpcTransportError):
        return TransientSubmissionError(f"Paymaster transport error ({method}): {e}", code=e.code)
    kind = match_fatal_kind(str(e)) or ErrorKind.PAYMASTER_REJECTED
    return FatalExecutionError(f"Paymaster rejected ({method}): {e}", kind=kind, code=e.code)


class PaymasterClient:
    def __init__(self, transport: JsonRpcTransport, entrypoint: str, chain_id: int, context: dict | None = None):
        self.transport = transport
        self.entrypoint = entrypoint
        self.chain_id_hex = hex(chain_id)
        self.context = context

    async def _rpc(self, method: str, user_op: dict) -> dict:
        params = [clean_user_operation(user_op), self.entrypoint, self.chain_id_hex]
        if self.context is not None:
            params.append(self.context)
        try:
            result = await self.transport.request(method, params)
        except RpcError as e:
            raise _translate(method, e) from e
        if not isinstance(result, dict):
            raise FatalExecutionError(
                f"Paymaster returned an invalid payload for {method}",
                kind=ErrorKind.PAYMASTER_REJECTED,
            )
        return result

    @staticmethod
    def _apply(user_op: dict, result: dict) -> dict:
        for key in PAYMASTER_FIELDS:
            if result.get(key):
                user_op[key] = result[key]
        return user_op

    async def get_stub_data(self, user_op: dict) -> dict:
        stub = await self._rpc("pm_getPaymasterStubData", user_op)
        logger.debug(f"Paymaster stub: {stub.get('paymaster', 'unknown')}")
        return self._apply(user_op, stub)

    async def get_data(self, user_op: dict) -> dict:
        pm_data = await self._rpc("pm_getPaymasterData", user_op)
        self._apply(user_op, pm_data)
        logger.info(f"UserOp sponsored by paymaster: {user_op.get('paymaster', 'unknown')}")
        return user_op

    async def aclose(self) -> None:
        await self.transport.aclose()
