"""
Supabase client connection - Lazy initialization
"""
from typing import Optional
from supabase import create_client, Client
from .config import settings

_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Create and return the Supabase client on first use"""
    global _supabase_client

    if _supabase_client is None:
        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            raise ValueError("Supabase credentials not configured")
        _supabase_client = create_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_KEY
        )

    return _supabase_client


class SupabaseProxy:
    """Proxy that resolves the client lazily on attribute access"""

    def __getattr__(self, name):
        client = get_supabase_client()
        return getattr(client, name)


supabase = SupabaseProxy()
