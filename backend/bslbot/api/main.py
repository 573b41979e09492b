"""
FastAPI application
"""
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core.config import settings
from ..core.exceptions import GraphInvalid
from ..flow.store import flow_store
from ..services.task_queue import task_queue, IMAGE_PROCESSING
from ..services.image_processing import image_processor
from ..conversation import conversation_dispatcher
from .routes import webhook_router, flow_editor_router, queue_router, conversations_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title=settings.APP_NAME,
        description="BSL - Asistente de certificados médicos por WhatsApp",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # CORS middleware (flow editor dashboard)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(webhook_router)
    app.include_router(flow_editor_router, prefix="/api")
    app.include_router(queue_router, prefix="/api")
    app.include_router(conversations_router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": settings.APP_NAME,
            "version": "1.0.0",
            "status": "running",
            "driver": settings.CONVERSATION_DRIVER
        }

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        stats = task_queue.get_queue_stats()
        return {
            "status": "ok",
            "flowInitialized": conversation_dispatcher.interpreter.is_initialized,
            "queueProcessing": stats["isProcessing"],
            "pendingTasks": stats["totalPending"]
        }

    @app.on_event("startup")
    async def startup():
        """Startup event"""
        logger.info(f"Starting {settings.APP_NAME} ({settings.CONVERSATION_DRIVER} driver)...")

        if not settings.WHAPI_KEY:
            logger.warning("WHAPI_KEY not configured")
        if not settings.OPENAI_API_KEY:
            logger.warning("OPENAI_API_KEY not configured")

        # Load the active flow into the interpreter
        try:
            conversation_dispatcher.interpreter.initialize_flow(flow_store.load())
        except GraphInvalid as e:
            logger.error(f"Stored flow could not be loaded: {e}")

        # Start the image queue
        task_queue.register_handler(IMAGE_PROCESSING, image_processor.process)
        await task_queue.start_processing()
        logger.info("Task queue started")

    @app.on_event("shutdown")
    async def shutdown():
        """Shutdown event"""
        logger.info(f"Shutting down {settings.APP_NAME}...")

        await task_queue.stop_processing()
        logger.info("Task queue stopped")

    return app


# Create app instance
app = create_app()
