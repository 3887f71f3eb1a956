"""Supabase data access layer."""

from nftmirror.data.supabase.client import (
    SupabaseClient,
    close_supabase_client,
    get_supabase_client,
)
from nftmirror.data.supabase.store import SupabaseProjectionStore

__all__ = [
    "SupabaseClient",
    "SupabaseProjectionStore",
    "close_supabase_client",
    "get_supabase_client",
]
