"""
提交流水线 — call descriptor → UserOp → 轮询 receipt
submit_with_retry: fatal 错误（余额不足 / revert / paymaster 拒绝）直接抛，
transient 错误固定间隔重试，超出次数抛 RetriesExhausted
"""
import asyncio
import logging
import time
from typing import Sequence

from config import (
    RECEIPT_POLLING_INTERVAL,
    RECEIPT_TIMEOUT,
    SUBMIT_MAX_RETRIES,
    SUBMIT_RETRY_DELAY,
)
from relay.cache import ClientCache
from relay.errors import RetriesExhausted, TransientSubmissionError, classify_error
from relay.models import CallDescriptor, UserOperationReceipt

logger = logging.getLogger("relayer.pipeline")


def _ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class SubmissionPipeline:
    def __init__(
        self,
        cache: ClientCache,
        *,
        polling_interval: float = RECEIPT_POLLING_INTERVAL,
        timeout: float = RECEIPT_TIMEOUT,
        retry_delay: float = SUBMIT_RETRY_DELAY,
    ):
        self.cache = cache
        self.polling_interval = polling_interval
        self.timeout = timeout
        self.retry_delay = retry_delay

    async def send_calls(self, calls: list[dict]) -> str:
        """提交一个 UserOp（可含多个 call），返回 userOpHash"""
        start = time.perf_counter()
        bundler = await self.cache.get_bundling_client()
        user_op_hash = await bundler.send_user_operation(calls)
        logger.info(f"Sent: {_ms(start):.1f}ms | {user_op_hash[:10]}...")
        return user_op_hash

    async def send(self, descriptors: Sequence[CallDescriptor]) -> str:
        return await self.send_calls([d.to_call() for d in descriptors])

    async def wait(self, user_op_hash: str) -> UserOperationReceipt:
        start = time.perf_counter()
        bundler = await self.cache.get_bundling_client()
        receipt = await bundler.wait_for_user_operation_receipt(
            user_op_hash,
            polling_interval=self.polling_interval,
            timeout=self.timeout,
        )
        logger.info(f"UserOp receipt: {_ms(start):.1f}ms | {user_op_hash[:10]}...")
        return receipt

    async def _submit_calls(self, calls: list[dict]) -> UserOperationReceipt:
        start = time.perf_counter()
        await self.cache.get_bundling_client()
        await self.cache.get_sponsored_account()
        logger.debug(f"Setup: {_ms(start):.1f}ms")

        receipt = await self.wait(await self.send_calls(calls))
        logger.info(f"Total: {_ms(start):.1f}ms")
        return receipt

    async def submit(self, descriptor: CallDescriptor) -> UserOperationReceipt:
        return await self._submit_calls([descriptor.to_call()])

    async def submit_batch(self, descriptors: Sequence[CallDescriptor]) -> UserOperationReceipt:
        if not descriptors:
            raise ValueError("Batch requires at least one call")
        return await self._submit_calls([d.to_call() for d in descriptors])

    async def submit_with_retry(
        self,
        descriptor: CallDescriptor,
        max_retries: int = SUBMIT_MAX_RETRIES,
    ) -> UserOperationReceipt:
        # 编码错误不重试
        calls = [descriptor.to_call()]
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._submit_calls(calls)
            except Exception as e:
                error = classify_error(e)
                if not isinstance(error, TransientSubmissionError):
                    logger.error(f"Attempt {attempt} failed (not retried): {e}")
                    if error is e:
                        raise
                    raise error from e
                logger.warning(f"Attempt {attempt} failed: {e}")
                if attempt > max_retries:
                    raise RetriesExhausted(attempt, error) from e
            await asyncio.sleep(self.retry_delay)
