# cardrecon/dependencies.py

"""
FastAPI dependencies.

Validates Supabase JWTs (every route is owner-scoped by the token's user id)
and hands out the configured record store.
"""

from functools import lru_cache
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from cardrecon.config import get_settings
from cardrecon.database import get_supabase_admin
from cardrecon.store import InMemoryStore, RecordStore, SupabaseStore

logger = logging.getLogger(__name__)

security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Validate the Supabase JWT and return the user_id.

    Uses supabase_admin.auth.get_user() to verify the token.
    This is a sync function -- FastAPI auto-runs it in a threadpool.
    """
    token = credentials.credentials

    try:
        user_response = get_supabase_admin().auth.get_user(token)
    except Exception as e:
        logger.info(f"Token rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if user_response is None or user_response.user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user_response.user.id


@lru_cache()
def get_store() -> RecordStore:
    """Process-wide store for the configured backend."""
    settings = get_settings()
    if settings.store_backend == "memory":
        logger.warning("Using the in-memory store; data is lost on restart")
        return InMemoryStore()
    return SupabaseStore(get_supabase_admin())
