"""
Conversation Module - Inbound message routing and bot control
"""
from .control import BotControl, control_action, is_control_message, STOP_PHRASES, RESUME_PHRASE
from .dispatcher import (
    ConversationDispatcher,
    ConversationDriver,
    conversation_dispatcher,
    create_conversation_dispatcher
)

__all__ = [
    "BotControl",
    "control_action",
    "is_control_message",
    "STOP_PHRASES",
    "RESUME_PHRASE",
    "ConversationDispatcher",
    "ConversationDriver",
    "conversation_dispatcher",
    "create_conversation_dispatcher",
]
