"""
Unit tests for TaskQueueService.
"""
import asyncio
import re
import pytest
from bslbot.services.task_queue import (
    FAILURE_NOTICE,
    IMAGE_PROCESSING,
    QueueConfig,
    TaskQueueService,
    TaskStatus,
    generate_task_id,
)


@pytest.fixture
def queue(gateway):
    return TaskQueueService(
        gateway=gateway,
        tick_seconds=0.01,
        queue_configs=[QueueConfig(IMAGE_PROCESSING, max_concurrency=2, processing_delay=0, retry_attempts=3)]
    )


async def run_tick(queue):
    started = queue.process_queues()
    await asyncio.gather(*started)
    return started


class TestEnqueue:
    """Tests for task creation."""

    def test_task_id_format(self):
        """Ids look like img_<epoch ms>_<9 base36 chars>."""
        assert re.match(r"^img_\d+_[a-z0-9]{9}$", generate_task_id())

    def test_enqueue_returns_id(self, queue):
        """Enqueue should append a pending task."""
        task_id = queue.enqueue_image_processing({"user_id": "573001112233"})
        assert re.match(r"^img_\d+_[a-z0-9]{9}$", task_id)
        assert queue.queues[IMAGE_PROCESSING][0].status == TaskStatus.PENDING
        assert queue.get_queue_stats()["totalPending"] == 1

    def test_unknown_queue(self, queue):
        """Unknown queues are rejected."""
        with pytest.raises(ValueError):
            queue.enqueue("audioProcessing", {})


class TestProcessing:
    """Tests for running, retrying and failing tasks."""

    @pytest.mark.asyncio
    async def test_successful_task(self, queue):
        """A successful handler completes the task once."""
        seen = []

        async def handler(data):
            seen.append(data["n"])

        queue.register_handler(IMAGE_PROCESSING, handler)
        queue.enqueue_image_processing({"n": 1})

        await run_tick(queue)

        stats = queue.get_queue_stats()["queues"][IMAGE_PROCESSING]
        assert seen == [1]
        assert stats == {"pending": 0, "active": 0, "processed": 1, "failed": 0, "maxConcurrency": 2}

    @pytest.mark.asyncio
    async def test_retries_then_fails(self, queue, gateway):
        """An always-failing task runs retry_attempts times and notifies once."""
        calls = []

        async def handler(data):
            calls.append(1)
            raise RuntimeError("classification failed")

        queue.register_handler(IMAGE_PROCESSING, handler)
        queue.enqueue_image_processing({"to": "573001112233@s.whatsapp.net"})

        for _ in range(5):
            await run_tick(queue)

        stats = queue.get_queue_stats()["queues"][IMAGE_PROCESSING]
        assert len(calls) == 3
        assert stats["failed"] == 1
        assert stats["pending"] == 0
        assert stats["active"] == 0
        assert gateway.bodies == [FAILURE_NOTICE]

    @pytest.mark.asyncio
    async def test_recovers_on_retry(self, queue, gateway):
        """A task that fails once should be completed on its second attempt."""
        attempts = []

        async def handler(data):
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("temporary")

        queue.register_handler(IMAGE_PROCESSING, handler)
        queue.enqueue_image_processing({"to": "573001112233@s.whatsapp.net"})

        await run_tick(queue)
        await run_tick(queue)

        stats = queue.get_queue_stats()["queues"][IMAGE_PROCESSING]
        assert stats["processed"] == 1
        assert stats["failed"] == 0
        assert gateway.bodies == []

    @pytest.mark.asyncio
    async def test_missing_handler_fails(self, queue):
        """Tasks without handler count as failures."""
        queue.enqueue_image_processing({})
        for _ in range(3):
            await run_tick(queue)
        assert queue.get_queue_stats()["queues"][IMAGE_PROCESSING]["failed"] == 1

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, queue):
        """No more than max_concurrency tasks run at once."""
        release = asyncio.Event()

        async def handler(data):
            await release.wait()

        queue.register_handler(IMAGE_PROCESSING, handler)
        for n in range(3):
            queue.enqueue_image_processing({"n": n})

        running = queue.process_queues() + queue.process_queues()
        assert queue.process_queues() == []

        stats = queue.get_queue_stats()
        assert stats["totalActive"] == 2
        assert stats["totalPending"] == 1

        release.set()
        await asyncio.gather(*running)
        await run_tick(queue)

        assert queue.get_queue_stats()["queues"][IMAGE_PROCESSING]["processed"] == 3


class TestLifecycle:
    """Tests for the ticker and admin helpers."""

    @pytest.mark.asyncio
    async def test_ticker_processes_tasks(self, queue):
        """The background ticker should drain the queue."""
        done = asyncio.Event()

        async def handler(data):
            done.set()

        queue.register_handler(IMAGE_PROCESSING, handler)
        await queue.start_processing()
        assert queue.get_queue_stats()["isProcessing"]

        queue.enqueue_image_processing({})
        await asyncio.wait_for(done.wait(), timeout=1)

        await queue.stop_processing()
        assert not queue.get_queue_stats()["isProcessing"]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, queue):
        """Starting twice keeps a single ticker."""
        await queue.start_processing()
        ticker = queue._ticker
        await queue.start_processing()
        assert queue._ticker is ticker
        await queue.stop_processing()

    def test_clear_all_queues(self, queue):
        """Clearing drops pending tasks and reports how many."""
        queue.enqueue_image_processing({})
        queue.enqueue_image_processing({})
        assert queue.clear_all_queues() == 2
        assert queue.get_queue_stats()["totalPending"] == 0
