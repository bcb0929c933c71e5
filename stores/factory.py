"""Factory for creating profile stores."""

from typing import Dict, Optional, Type

from config import settings
from .base import ProfileStore
from .memory_store import InMemoryProfileStore
from .json_store import JsonFileProfileStore
from .supabase_store import SupabaseProfileStore


# Registry of available stores
STORES: Dict[str, Type[ProfileStore]] = {
    "memory": InMemoryProfileStore,
    "json": JsonFileProfileStore,
    "file": JsonFileProfileStore,
    "supabase": SupabaseProfileStore,
    "postgrest": SupabaseProfileStore,
}


def get_profile_store(store_name: Optional[str] = None) -> ProfileStore:
    """Get a profile store instance.

    Args:
        store_name: Store name (memory, json, supabase). Defaults to
                    ``settings.profile_store``.

    Returns:
        ProfileStore instance

    Examples:
        get_profile_store("memory")
        get_profile_store("supabase")
        get_profile_store()  # Uses ROADMAP_PROFILE_STORE, json by default
    """
    key = (store_name or settings.profile_store).lower()
    if key not in STORES:
        raise ValueError(
            f"Unknown profile store: {store_name or settings.profile_store}. "
            f"Available: {list(STORES.keys())}"
        )
    return STORES[key]()


def list_stores() -> Dict[str, bool]:
    """List all stores and their availability.

    Returns:
        Dict mapping store name to availability status
    """
    result = {}
    for name, store_class in STORES.items():
        # Skip aliases
        if name in ["file", "postgrest"]:
            continue
        result[name] = store_class().is_available()
    return result
