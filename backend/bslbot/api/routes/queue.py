"""
Task queue admin routes
"""
import logging
from fastapi import APIRouter

from ...services.task_queue import task_queue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["queue"])


@router.get("/stats")
async def get_queue_stats():
    return task_queue.get_queue_stats()


@router.post("/clear")
async def clear_queues():
    """Drop every pending task (running tasks finish)"""
    dropped = task_queue.clear_all_queues()
    return {"success": True, "dropped": dropped}
