from .config import settings, get_settings
from .supabase_client import supabase, get_supabase_client
from .exceptions import (
    BotError,
    GraphInvalid,
    LoopLimitExceeded,
    NodeNotFound,
    ProviderError,
    TaskFailurePermanent
)

__all__ = [
    "settings",
    "get_settings",
    "supabase",
    "get_supabase_client",
    "BotError",
    "GraphInvalid",
    "LoopLimitExceeded",
    "NodeNotFound",
    "ProviderError",
    "TaskFailurePermanent",
]
