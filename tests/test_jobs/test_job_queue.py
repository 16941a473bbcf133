"""Tests for InMemoryJobQueue: delivery, retry with backoff and the failure hook."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from feetracker.config import QueueSettings
from feetracker.jobs.job_queue import InMemoryJobQueue, Job


def _queue(**overrides) -> InMemoryJobQueue:
    settings = QueueSettings(**{"max_attempts": 3, "retry_base_delay": 0.0, **overrides})
    return InMemoryJobQueue(settings)


class TestDelivery:
    @pytest.mark.asyncio
    async def test_handler_receives_job(self) -> None:
        queue = _queue()
        handler = AsyncMock()
        queue.set_handler(handler)
        await queue.start()

        job = await queue.add("process-historical-transactions", {"page": 1})
        await asyncio.wait_for(queue.join(), timeout=1.0)
        await queue.stop()

        handler.assert_awaited_once_with(job)
        assert job.attempts == 1

    @pytest.mark.asyncio
    async def test_follow_up_jobs_are_processed(self) -> None:
        queue = _queue()
        seen: list[int] = []

        async def _handler(job: Job) -> None:
            seen.append(job.payload["page"])
            if job.payload["page"] < 3:
                await queue.add(job.name, {"page": job.payload["page"] + 1})

        queue.set_handler(_handler)
        await queue.start()
        await queue.add("process-historical-transactions", {"page": 1})
        await asyncio.wait_for(queue.join(), timeout=1.0)
        await queue.stop()

        assert seen == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_start_without_handler_raises(self) -> None:
        with pytest.raises(RuntimeError):
            await _queue().start()


class TestRetries:
    @pytest.mark.asyncio
    async def test_retried_until_success(self) -> None:
        queue = _queue()
        handler = AsyncMock(side_effect=[ValueError("boom"), None])
        on_failed = AsyncMock()
        queue.set_handler(handler, on_failed=on_failed)
        await queue.start()

        job = await queue.add("x", {})
        await asyncio.wait_for(queue.join(), timeout=1.0)
        await queue.stop()

        assert handler.await_count == 2
        assert job.attempts == 2
        on_failed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_hook_after_max_attempts(self) -> None:
        queue = _queue(max_attempts=3)
        error = ValueError("always")
        handler = AsyncMock(side_effect=error)
        on_failed = AsyncMock()
        queue.set_handler(handler, on_failed=on_failed)
        await queue.start()

        job = await queue.add("x", {})
        await asyncio.wait_for(queue.join(), timeout=1.0)
        await queue.stop()

        assert handler.await_count == 3
        on_failed.assert_awaited_once_with(job, error)

    @pytest.mark.asyncio
    async def test_exponential_backoff_delays(self) -> None:
        queue = _queue(max_attempts=4, retry_base_delay=2.0)
        queue.set_handler(AsyncMock(side_effect=ValueError("always")))
        job = Job(name="x", payload={})

        with patch("feetracker.jobs.job_queue.asyncio.sleep", new=AsyncMock()) as sleep:
            for _ in range(4):
                await queue._run(job)
            await asyncio.gather(*queue._retries)

        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 4.0, 8.0]

    @pytest.mark.asyncio
    async def test_hook_error_is_contained(self) -> None:
        queue = _queue(max_attempts=1)
        queue.set_handler(
            AsyncMock(side_effect=ValueError("boom")),
            on_failed=AsyncMock(side_effect=RuntimeError("hook broke")),
        )

        # must not raise
        await queue._run(Job(name="x", payload={}))

    @pytest.mark.asyncio
    async def test_backoff_does_not_hold_the_worker(self) -> None:
        queue = _queue(worker_count=1, retry_base_delay=0.2)
        done: list[str] = []

        async def _handler(job: Job) -> None:
            if job.payload["batch"] == "flaky" and job.attempts == 1:
                raise ValueError("boom")
            done.append(job.payload["batch"])

        queue.set_handler(_handler)
        await queue.start()
        await queue.add("x", {"batch": "flaky"})
        await queue.add("x", {"batch": "steady"})

        await asyncio.sleep(0.05)
        assert done == ["steady"]

        await asyncio.wait_for(queue.join(), timeout=1.0)
        await queue.stop()
        assert done == ["steady", "flaky"]

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_retry(self) -> None:
        queue = _queue(retry_base_delay=30.0)
        handler = AsyncMock(side_effect=ValueError("boom"))
        queue.set_handler(handler)
        await queue.start()

        await queue.add("x", {})
        await asyncio.sleep(0.02)
        await asyncio.wait_for(queue.stop(), timeout=1.0)

        assert handler.await_count == 1
        assert queue._retries == set()
