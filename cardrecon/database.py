# cardrecon/database.py

from functools import lru_cache

from supabase import create_client, Client
from cardrecon.config import get_settings


@lru_cache()
def get_supabase_admin() -> Client:
    """
    Admin client (bypasses RLS - use carefully).

    Every query made with it must filter on user_id.
    """
    settings = get_settings()
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key
    )
