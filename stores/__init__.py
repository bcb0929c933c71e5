"""Profile store abstraction for per-user roadmap progress."""

from .base import ProfileStore, apply_update
from .memory_store import InMemoryProfileStore
from .json_store import JsonFileProfileStore
from .supabase_store import SupabaseProfileStore, migration_sql
from .factory import get_profile_store, list_stores

__all__ = [
    "ProfileStore",
    "apply_update",
    "InMemoryProfileStore",
    "JsonFileProfileStore",
    "SupabaseProfileStore",
    "migration_sql",
    "get_profile_store",
    "list_stores",
]
