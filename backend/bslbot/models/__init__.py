from .flow import (
    # Node types
    NodeType,
    ConditionOperator,
    InputValidation,
    SUSPENDING_TYPES,

    # Graph models
    MenuOption,
    NodeData,
    FlowNode,
    FlowConnection,
    FlowGraph,

    # Utility functions
    create_default_flow
)
from .conversation import Sender, Phase, dedupe_history
from .webhook import (
    WebhookPayload,
    WhapiMessage,
    WhapiText,
    WhapiMedia,
    parse_webhook,
    extract_phone_from_jid
)

__all__ = [
    # Flow
    "NodeType",
    "ConditionOperator",
    "InputValidation",
    "SUSPENDING_TYPES",
    "MenuOption",
    "NodeData",
    "FlowNode",
    "FlowConnection",
    "FlowGraph",
    "create_default_flow",

    # Conversation
    "Sender",
    "Phase",
    "dedupe_history",

    # Webhook
    "WebhookPayload",
    "WhapiMessage",
    "WhapiText",
    "WhapiMedia",
    "parse_webhook",
    "extract_phone_from_jid",
]
