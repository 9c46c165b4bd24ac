"""
三种提交方式
- single: 单个 UserOp + 重试
- parallel: 同一 sponsored account 的两个 UserOp 按顺序提交，receipt 并发等待
- batched: 多个 call 合成一个 UserOp（executeBatch），全部成功或全部失败
"""
import asyncio
import logging
import time
from typing import Sequence

from config import SUBMIT_MAX_RETRIES
from relay.models import CallDescriptor, UserOperationReceipt
from relay.pipeline import SubmissionPipeline

logger = logging.getLogger("relayer.dispatch")


class Dispatcher:
    def __init__(self, pipeline: SubmissionPipeline):
        self.pipeline = pipeline

    async def send_single(
        self,
        descriptor: CallDescriptor,
        max_retries: int = SUBMIT_MAX_RETRIES,
    ) -> UserOperationReceipt:
        return await self.pipeline.submit_with_retry(descriptor, max_retries)

    async def send_parallel(
        self,
        first: CallDescriptor,
        second: CallDescriptor,
    ) -> tuple[UserOperationReceipt, UserOperationReceipt]:
        start = time.perf_counter()
        logger.info("Parallel send with sequential dispatch...")

        # 顺序提交：bundler 按提交顺序分配 sequence
        first_hash = await self.pipeline.send([first])
        second_hash = await self.pipeline.send([second])

        # 两个等待都跑完再抛错，不留下没人取结果的 task
        results = await asyncio.gather(
            self.pipeline.wait(first_hash),
            self.pipeline.wait(second_hash),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        first_receipt, second_receipt = results
        logger.info(f"Parallel complete: {(time.perf_counter() - start) * 1000:.1f}ms")
        return first_receipt, second_receipt

    async def send_batched(self, descriptors: Sequence[CallDescriptor]) -> UserOperationReceipt:
        logger.info(f"Batch ({len(descriptors)} calls)...")
        return await self.pipeline.submit_batch(descriptors)
