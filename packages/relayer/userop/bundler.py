"""
Bundler HTTP 客户端（ERC-4337 JSON-RPC）
sendUserOperation 完整流程:
  1. 编码 calls → execute / executeBatch
  2. EntryPoint.getNonce(sender, key)，每个 UserOp 独立 key，连续提交不抢同一个 nonce
  3. pm_getPaymasterStubData → eth_estimateUserOperationGas → pm_getPaymasterData
  4. owner 签名 → eth_sendUserOperation
RPC / transport 错误在这里翻译成 relay.errors 里的类型
"""
import asyncio
import logging
import time

from chain.client import QueryClient
from chain.rpc import JsonRpcTransport, RpcError, RpcTransportError
from relay.errors import (
    ErrorKind,
    FatalExecutionError,
    SubmissionTimeout,
    TransientSubmissionError,
    match_fatal_kind,
)
from relay.models import UserOperationReceipt
from userop.account import SponsoredAccount
from userop.builder import build_user_operation, clean_user_operation
from userop.paymaster import PaymasterClient

logger = logging.getLogger("relayer.userop.bundler")

GAS_FIELDS = (
    "preVerificationGas",
    "callGasLimit",
    "verificationGasLimit",
    "paymasterVerificationGasLimit",
    "paymasterPostOpGasLimit",
)


def _translate(method: str, e: RpcError) -> Exception:
    if isinstance(e, RpcTransportError):
        return TransientSubmissionError(f"Bundler transport error ({method}): {e}", code=e.code)
    kind = match_fatal_kind(str(e))
    if kind is not None:
        return FatalExecutionError(f"Bundler RPC error ({method}): {e}", kind=kind, code=e.code)
    return TransientSubmissionError(f"Bundler RPC error ({method}): {e}", code=e.code)


class BundlerClient:
    def __init__(
        self,
        transport: JsonRpcTransport,
        account: SponsoredAccount,
        query: QueryClient,
        paymaster: PaymasterClient | None = None,
    ):
        self.transport = transport
        self.account = account
        self.query = query
        self.paymaster = paymaster
        self._last_nonce_key = 0

    async def _rpc(self, method: str, params: list):
        try:
            return await self.transport.request(method, params)
        except RpcError as e:
            logger.error(f"Bundler RPC error ({method}): {e}")
            raise _translate(method, e) from e

    def _next_nonce_key(self) -> int:
        # 单调递增，同一进程内不会重复
        self._last_nonce_key = max(time.time_ns(), self._last_nonce_key + 1)
        return self._last_nonce_key

    async def _estimate_gas(self, user_op: dict) -> dict:
        gas = await self._rpc(
            "eth_estimateUserOperationGas",
            [clean_user_operation(user_op), self.account.entrypoint],
        )
        for key in GAS_FIELDS:
            if gas.get(key):
                user_op[key] = gas[key]

        try:
            gas_price = await self.query.gas_price()
        except RpcError as e:
            raise _translate("eth_gasPrice", e) from e
        user_op["maxFeePerGas"] = gas_price
        user_op["maxPriorityFeePerGas"] = gas_price

        logger.debug(f"Gas estimated: call={gas.get('callGasLimit')} verify={gas.get('verificationGasLimit')}")
        return user_op

    async def prepare_user_operation(self, calls: list[dict]) -> dict:
        account = self.account
        call_data = account.encode_calls(calls)
        try:
            nonce = await account.get_nonce(self._next_nonce_key())
        except RpcError as e:
            raise _translate("getNonce", e) from e
        factory, factory_data = account.factory_args()

        op = build_user_operation(
            sender=account.address,
            nonce=nonce,
            call_data=call_data,
            factory=factory,
            factory_data=factory_data,
        )
        if self.paymaster is not None:
            op = await self.paymaster.get_stub_data(op)
        op = await self._estimate_gas(op)
        if self.paymaster is not None:
            op = await self.paymaster.get_data(op)

        op["signature"] = account.sign_user_operation(op)
        return op

    async def send_user_operation(self, calls: list[dict]) -> str:
        """
        构造 + sponsor + 签名 + eth_sendUserOperation → 返回 userOpHash
        """
        op = await self.prepare_user_operation(calls)
        user_op_hash = await self._rpc(
            "eth_sendUserOperation",
            [clean_user_operation(op), self.account.entrypoint],
        )
        if not isinstance(user_op_hash, str):
            raise TransientSubmissionError("Bundler returned an invalid userOp hash")
        logger.info(f"UserOp submitted: {user_op_hash}")
        return user_op_hash

    async def get_user_operation_receipt(self, user_op_hash: str) -> dict | None:
        result = await self._rpc("eth_getUserOperationReceipt", [user_op_hash])
        if result is not None and not isinstance(result, dict):
            raise TransientSubmissionError("Bundler returned an invalid receipt payload")
        return result

    async def wait_for_user_operation_receipt(
        self,
        user_op_hash: str,
        *,
        polling_interval: float,
        timeout: float,
    ) -> UserOperationReceipt:
        """
        轮询 eth_getUserOperationReceipt 直到成功或超时
        轮询期间的 transient 错误（未索引、网络抖动）继续轮询
        单次请求也受剩余时间限制，超过 deadline 一律 SubmissionTimeout
        """
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise SubmissionTimeout(user_op_hash, timeout)
            try:
                result = await asyncio.wait_for(self.get_user_operation_receipt(user_op_hash), remaining)
            except asyncio.TimeoutError:
                raise SubmissionTimeout(user_op_hash, timeout) from None
            except TransientSubmissionError as e:
                logger.debug(f"Receipt poll for {user_op_hash[:10]}... failed: {e}")
                result = None

            if result is not None:
                result.setdefault("userOpHash", user_op_hash)
                receipt = UserOperationReceipt.from_rpc(result)
                logger.info(f"UserOp receipt: success={receipt.success} tx={receipt.transaction_hash}")
                if not receipt.success:
                    raise FatalExecutionError(
                        f"UserOp failed: execution reverted ({receipt.reason or 'unknown'})",
                        kind=ErrorKind.EXECUTION_REVERTED,
                    )
                self.account.mark_deployed()
                return receipt

            await asyncio.sleep(polling_interval)

    async def aclose(self) -> None:
        await self.transport.aclose()
