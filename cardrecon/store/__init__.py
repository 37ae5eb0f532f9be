# cardrecon/store/__init__.py

from cardrecon.store.base import RecordStore
from cardrecon.store.memory import InMemoryStore
from cardrecon.store.supabase_store import SupabaseStore

__all__ = [
    "RecordStore",
    "InMemoryStore",
    "SupabaseStore",
]
