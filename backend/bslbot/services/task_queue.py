"""
Task Queue Service
In-process async queues with bounded concurrency and bounded retries
"""
import logging
import asyncio
import random
import string
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Callable, Any, Awaitable, Deque, Set

from ..core.config import settings
from ..core.exceptions import TaskFailurePermanent

logger = logging.getLogger(__name__)

IMAGE_PROCESSING = "imageProcessing"

FAILURE_NOTICE = (
    "❌ No pude procesar tu imagen después de varios intentos. "
    "Por favor intenta con una imagen más clara o contacta soporte."
)

TaskHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class TaskStatus(str, Enum):
    """Lifecycle of a queued task"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class QueueConfig:
    """Per-queue limits"""
    name: str
    max_concurrency: int = 2
    processing_delay: int = 1000  # ms, informational
    retry_attempts: int = 3


@dataclass
class WorkerStats:
    """Counters of a queue"""
    active: int = 0
    processed: int = 0
    failed: int = 0


@dataclass
class Task:
    """One deferred unit of work"""
    type: str
    data: Dict[str, Any]
    id: str = field(default_factory=lambda: generate_task_id())
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    attempts: int = 0
    status: TaskStatus = TaskStatus.PENDING
    error: Optional[str] = None


def generate_task_id(prefix: str = "img") -> str:
    """img_{epoch_ms}_{9 random base36 chars}"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class TaskQueueService:
    """
    Multi-queue async task runner.

    - FIFO per queue, at most max_concurrency tasks running per queue
    - Failed tasks are requeued at the tail until retry_attempts is reached
    - Permanently failed tasks notify the user once through the gateway
    - Counters are only touched in synchronous sections (never across an await)
    """

    def __init__(
        self,
        gateway=None,
        tick_seconds: Optional[float] = None,
        queue_configs: Optional[List[QueueConfig]] = None
    ):
        """
        Initialize the task queue.

        Args:
            gateway: WhatsAppService used for failure notifications
            tick_seconds: Interval between queue scans
            queue_configs: Queues to create (default: imageProcessing)
        """
        self.gateway = gateway
        self.tick_seconds = tick_seconds or settings.QUEUE_TICK_SECONDS

        configs = queue_configs or [QueueConfig(
            name=IMAGE_PROCESSING,
            max_concurrency=settings.IMAGE_QUEUE_MAX_CONCURRENCY,
            processing_delay=settings.IMAGE_QUEUE_PROCESSING_DELAY_MS,
            retry_attempts=settings.IMAGE_QUEUE_RETRY_ATTEMPTS
        )]

        self.queue_config: Dict[str, QueueConfig] = {c.name: c for c in configs}
        self.queues: Dict[str, Deque[Task]] = {c.name: deque() for c in configs}
        self.workers: Dict[str, WorkerStats] = {c.name: WorkerStats() for c in configs}
        self.handlers: Dict[str, TaskHandler] = {}

        self._running = False
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

        logger.info(f"Queues initialized: {list(self.queue_config.keys())}")

    # ==================== Registration / enqueue ====================

    def register_handler(self, task_type: str, handler: TaskHandler) -> None:
        """Register the coroutine that runs tasks of a type"""
        self.handlers[task_type] = handler

    def enqueue(self, task_type: str, data: Dict[str, Any]) -> str:
        """Append a pending task and return its id"""
        if task_type not in self.queues:
            raise ValueError(f"Unknown queue: {task_type}")

        task = Task(type=task_type, data=data)
        self.queues[task_type].append(task)

        logger.info(
            f"Task {task.id} enqueued in {task_type} "
            f"(user: {data.get('user_id')}, queue size: {len(self.queues[task_type])})"
        )
        return task.id

    def enqueue_image_processing(self, data: Dict[str, Any]) -> str:
        return self.enqueue(IMAGE_PROCESSING, data)

    # ==================== Processing ====================

    def process_queues(self) -> List[asyncio.Task]:
        """
        Start the head task of every queue that has free capacity.

        Returns:
            The asyncio tasks started in this tick
        """
        started = []
        for queue_name, queue in self.queues.items():
            config = self.queue_config[queue_name]
            worker = self.workers[queue_name]

            if worker.active >= config.max_concurrency or not queue:
                continue

            task = queue.popleft()
            task.status = TaskStatus.PROCESSING
            worker.active += 1

            running = asyncio.create_task(self.process_task(task, config))
            self._inflight.add(running)
            running.add_done_callback(self._inflight.discard)
            started.append(running)

        return started

    async def process_task(self, task: Task, config: QueueConfig) -> None:
        """Run one task and settle its counters"""
        task.attempts += 1
        worker = self.workers[config.name]
        logger.info(f"Processing task {task.id} ({task.type}), attempt {task.attempts}")

        try:
            handler = self.handlers.get(task.type)
            if handler is None:
                raise ValueError(f"Tipo de tarea no soportado: {task.type}")
            await handler(task.data)

        except Exception as e:
            task.error = str(e)
            worker.active -= 1

            if task.attempts < config.retry_attempts:
                task.status = TaskStatus.PENDING
                self.queues[config.name].append(task)
                logger.warning(
                    f"Task {task.id} failed ({e}), requeued "
                    f"({task.attempts}/{config.retry_attempts})"
                )
                return

            task.status = TaskStatus.FAILED
            worker.failed += 1
            logger.error(str(TaskFailurePermanent(task.id, task.attempts, task.error)))
            await self._notify_failure(task)
            return

        task.status = TaskStatus.COMPLETED
        worker.active -= 1
        worker.processed += 1
        logger.info(f"Task {task.id} completed")

    async def _notify_failure(self, task: Task) -> None:
        """Best-effort notice to the user"""
        to = task.data.get("to")
        if not to or self.gateway is None:
            return
        try:
            result = await self.gateway.send_text(to, FAILURE_NOTICE)
            if not result.get("success"):
                logger.error(f"Failure notice for task {task.id} not sent: {result.get('error')}")
        except Exception as e:
            logger.error(f"Error notifying failure of task {task.id}: {e}")

    # ==================== Lifecycle ====================

    async def start_processing(self) -> None:
        """Start the background ticker"""
        if self._running:
            return

        self._running = True
        self._ticker = asyncio.create_task(self._processing_loop())
        logger.info("Queue processing started")

    async def stop_processing(self) -> None:
        """Stop the background ticker (running tasks are left to finish)"""
        self._running = False
        if self._ticker:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None
        logger.info("Queue processing stopped")

    async def _processing_loop(self) -> None:
        while self._running:
            try:
                self.process_queues()
            except Exception as e:
                logger.exception(f"Error in queue loop: {e}")

            await asyncio.sleep(self.tick_seconds)

    # ==================== Admin ====================

    def get_queue_stats(self) -> Dict[str, Any]:
        queues = {}
        for name, queue in self.queues.items():
            worker = self.workers[name]
            queues[name] = {
                "pending": len(queue),
                "active": worker.active,
                "processed": worker.processed,
                "failed": worker.failed,
                "maxConcurrency": self.queue_config[name].max_concurrency,
            }

        return {
            "isProcessing": self._running,
            "queues": queues,
            "totalPending": sum(q["pending"] for q in queues.values()),
            "totalActive": sum(q["active"] for q in queues.values()),
        }

    def clear_all_queues(self) -> int:
        """Drop every pending task, returns how many were dropped"""
        dropped = 0
        for name, queue in self.queues.items():
            dropped += len(queue)
            queue.clear()
        logger.info(f"All queues cleared ({dropped} pending tasks dropped)")
        return dropped


def create_task_queue(gateway=None) -> TaskQueueService:
    """Factory wiring the default gateway for failure notices"""
    from .whatsapp import whatsapp_service
    return TaskQueueService(gateway=gateway or whatsapp_service)


# Singleton instance
task_queue = create_task_queue()
