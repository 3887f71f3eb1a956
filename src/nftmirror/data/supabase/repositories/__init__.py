"""Repository pattern implementations."""

from nftmirror.data.supabase.repositories.asset_repo import AssetRepository
from nftmirror.data.supabase.repositories.cursor_repo import CursorRepository
from nftmirror.data.supabase.repositories.listing_repo import ListingRepository

__all__ = ["AssetRepository", "CursorRepository", "ListingRepository"]
