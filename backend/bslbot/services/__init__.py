"""
Services Module
External collaborators and background processing for the BSL bot
"""

# WhatsApp gateway (Whapi)
from .whatsapp import whatsapp_service, WhatsAppService

# AI (OpenAI chat + vision)
from .ai import ai_service, AIService, IMAGE_LABELS

# Conversation persistence (Supabase)
from .persistence import conversation_store, ConversationStore, empty_conversation

# BSL patient functions
from .patients import patient_service, PatientService

# Certificate PDF (api2pdf)
from .pdf import pdf_service, PDFService, CERTIFICATE_CAPTION

# Send + persist helper
from .messages import message_service, MessageService, create_message_service, history_entry

# Validation
from .validation import ValidationService

# Prompts
from .prompts import INSTITUTIONAL_PROMPT, get_institutional_prompt

# Task queue
from .task_queue import (
    task_queue,
    TaskQueueService,
    Task,
    TaskStatus,
    QueueConfig,
    WorkerStats,
    IMAGE_PROCESSING,
    FAILURE_NOTICE,
    create_task_queue
)

# Per-user conversation locks
from .locks import user_locks, UserLocks

# Queued image job
from .image_processing import image_processor, ImageProcessor, create_image_processor

__all__ = [
    # Gateway
    "whatsapp_service",
    "WhatsAppService",

    # AI
    "ai_service",
    "AIService",
    "IMAGE_LABELS",

    # Persistence
    "conversation_store",
    "ConversationStore",
    "empty_conversation",

    # Patients / PDF
    "patient_service",
    "PatientService",
    "pdf_service",
    "PDFService",
    "CERTIFICATE_CAPTION",

    # Messages
    "message_service",
    "MessageService",
    "create_message_service",
    "history_entry",

    # Validation / prompts
    "ValidationService",
    "INSTITUTIONAL_PROMPT",
    "get_institutional_prompt",

    # Queue
    "task_queue",
    "TaskQueueService",
    "Task",
    "TaskStatus",
    "QueueConfig",
    "WorkerStats",
    "IMAGE_PROCESSING",
    "FAILURE_NOTICE",
    "create_task_queue",

    # Locks
    "user_locks",
    "UserLocks",

    # Image job
    "image_processor",
    "ImageProcessor",
    "create_image_processor",
]
