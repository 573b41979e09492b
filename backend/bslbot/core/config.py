"""
Configuration settings using Pydantic
"""
from functools import lru_cache
from typing import Optional
from pathlib import Path
from pydantic_settings import BaseSettings

# Get the backend directory
BACKEND_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = BACKEND_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # App
    APP_NAME: str = "BSL Bot"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Whapi (WhatsApp gateway)
    WHAPI_KEY: str = ""
    WHAPI_BASE_URL: str = "https://gate.whapi.cloud"
    BOT_NUMBER: str = "573008021701"

    # OpenAI
    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"

    # api2pdf (certificate rendering)
    API2PDF_KEY: str = ""
    API2PDF_ENDPOINT: str = "https://v2018.api2pdf.com/chrome/url"
    CERTIFICATE_BASE_URL: str = "https://www.bsl.com.co/descarga-whp"
    PDF_POLL_ATTEMPTS: int = 6
    PDF_POLL_DELAY_SECONDS: float = 1.0

    # BSL site functions (patient lookup, mark paid)
    BSL_FUNCTIONS_URL: str = "https://www.bsl.com.co/_functions"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    CONVERSATIONS_TABLE: str = "conversaciones"

    # Conversation driver: "phases" or "flow" (exactly one per deployment)
    CONVERSATION_DRIVER: str = "phases"
    COMPLETED_PHASE_RESTARTS: bool = False

    # Flow graph
    FLOW_FILE_PATH: str = str(BACKEND_DIR / "config" / "botFlow.json")
    FLOW_MAX_ITERATIONS: int = 20

    # Task queue
    QUEUE_TICK_SECONDS: float = 0.5
    IMAGE_QUEUE_MAX_CONCURRENCY: int = 2
    IMAGE_QUEUE_PROCESSING_DELAY_MS: int = 1000
    IMAGE_QUEUE_RETRY_ATTEMPTS: int = 3

    # Optional override for the AI system prompt
    INSTITUTIONAL_PROMPT: Optional[str] = None

    class Config:
        env_file = str(ENV_FILE)
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
