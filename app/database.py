from typing import Optional

from supabase import Client, create_client

from app import config
from app.errors import require_setting

_client: Optional[Client] = None


def get_supabase() -> Client:
    """Get the shared Supabase client, creating it on first use"""
    global _client
    if _client is None:
        url = require_setting(config.SUPABASE_URL, "SUPABASE_URL")
        key = require_setting(config.SUPABASE_KEY, "SUPABASE_KEY")
        _client = create_client(url, key)
    return _client
