"""
Entry point for the backend application
"""
import uvicorn
from bslbot.core.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "bslbot.api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
