from .webhook import router as webhook_router
from .flow_editor import router as flow_editor_router
from .queue import router as queue_router
from .conversations import router as conversations_router

__all__ = [
    "webhook_router",
    "flow_editor_router",
    "queue_router",
    "conversations_router"
]
