"""Tests for single, parallel and batched dispatch."""
from __future__ import annotations

import pytest

from conftest import FakeBundler, FakeCache, make_descriptor
from relay.dispatch import Dispatcher
from relay.errors import ErrorKind, FatalExecutionError, SubmissionTimeout
from relay.pipeline import SubmissionPipeline


def _dispatcher(cache) -> Dispatcher:
    return Dispatcher(SubmissionPipeline(cache, polling_interval=0, timeout=1, retry_delay=0))


class TestSingle:
    @pytest.mark.asyncio
    async def test_single_submits_one_operation(self, cache, bundler, descriptor):
        receipt = await _dispatcher(cache).send_single(descriptor)
        assert receipt.success
        assert len(bundler.sent) == 1
        assert len(bundler.sent[0]) == 1


class TestParallel:
    @pytest.mark.asyncio
    async def test_submission_order_and_pairing(self):
        first_hash = "0x" + f"{1:064x}"
        # the first receipt settles last
        bundler = FakeBundler(receipt_delays={first_hash: 0.05})
        cache = FakeCache(bundler)
        a = make_descriptor("Parallel Team Alpha", 3)
        b = make_descriptor("Parallel Team Beta", 4)

        first, second = await _dispatcher(cache).send_parallel(a, b)

        assert [calls[0]["data"] for calls in bundler.sent] == [a.to_call()["data"], b.to_call()["data"]]
        assert bundler.receipt_order == ["0x" + f"{2:064x}", first_hash]
        assert first.user_op_hash == first_hash
        assert second.user_op_hash == "0x" + f"{2:064x}"

    @pytest.mark.asyncio
    async def test_second_submission_not_sent_when_first_fails(self, cache, bundler):
        bundler.send_failures = [RuntimeError("execution reverted")]
        with pytest.raises(RuntimeError):
            await _dispatcher(cache).send_parallel(make_descriptor("A"), make_descriptor("B"))
        assert len(bundler.sent) == 1

    @pytest.mark.asyncio
    async def test_failed_wait_does_not_orphan_sibling(self):
        first_hash = "0x" + f"{1:064x}"
        second_hash = "0x" + f"{2:064x}"
        bundler = FakeBundler(receipt_delays={second_hash: 0.05})
        bundler.receipt_failures = {
            first_hash: SubmissionTimeout(first_hash, 1),
            second_hash: SubmissionTimeout(second_hash, 1),
        }

        with pytest.raises(SubmissionTimeout) as exc_info:
            await _dispatcher(FakeCache(bundler)).send_parallel(make_descriptor("A"), make_descriptor("B"))

        assert exc_info.value.user_op_hash == first_hash
        # the slower wait finished before the error surfaced
        assert bundler.receipt_order == [first_hash, second_hash]


class TestBatched:
    @pytest.mark.asyncio
    async def test_batch_is_one_operation(self, cache, bundler):
        descriptors = [make_descriptor(f"Batched Team {i}", i) for i in range(3)]
        receipt = await _dispatcher(cache).send_batched(descriptors)
        assert receipt.success
        assert len(bundler.sent) == 1
        assert [c["data"] for c in bundler.sent[0]] == [d.to_call()["data"] for d in descriptors]

    @pytest.mark.asyncio
    async def test_batch_failure_matches_single_failure(self, cache, bundler, descriptor):
        error = FatalExecutionError("UserOp failed: execution reverted", kind=ErrorKind.EXECUTION_REVERTED)
        bundler.always_fail = error
        dispatcher = _dispatcher(cache)

        with pytest.raises(FatalExecutionError) as batch_exc:
            await dispatcher.send_batched([descriptor, descriptor, descriptor])
        with pytest.raises(FatalExecutionError) as single_exc:
            await dispatcher.send_single(descriptor)

        assert batch_exc.value is single_exc.value is error
        assert bundler.receipt_order == []

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, cache, bundler):
        with pytest.raises(ValueError):
            await _dispatcher(cache).send_batched([])
        assert bundler.sent == []
