"""Supabase-backed projection store."""

from typing import Any

from nftmirror.data.models.asset import Asset, AssetKey
from nftmirror.data.models.listing import Listing, ListingKey, ListingStatus
from nftmirror.data.protocols import Versioned
from nftmirror.data.supabase.client import SupabaseClient
from nftmirror.data.supabase.repositories import (
    AssetRepository,
    CursorRepository,
    ListingRepository,
)


class SupabaseProjectionStore:
    """`ProjectionStore` over the assets, listings and sync_cursors tables."""

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client
        self.assets = AssetRepository(client)
        self.listings = ListingRepository(client)
        self.cursors = CursorRepository(client)

    async def find_asset(self, key: AssetKey) -> Versioned[Asset] | None:
        return await self.assets.get_by_key(key)

    async def save_asset(self, asset: Asset, expected_version: int | None) -> int:
        return await self.assets.save(asset, expected_version)

    async def find_listing(self, key: ListingKey) -> Versioned[Listing] | None:
        return await self.listings.get_by_key(key)

    async def save_listing(self, listing: Listing, expected_version: int | None) -> int:
        return await self.listings.save(listing, expected_version)

    async def list_assets(
        self,
        owner: str | None = None,
        listed: bool | None = None,
        limit: int = 100,
    ) -> list[Asset]:
        return await self.assets.list_assets(owner=owner, listed=listed, limit=limit)

    async def list_listings(
        self,
        status: ListingStatus | None = None,
        seller: str | None = None,
        limit: int = 100,
    ) -> list[Listing]:
        return await self.listings.list_listings(status=status, seller=seller, limit=limit)

    async def get_cursor(self, name: str) -> int | None:
        return await self.cursors.get(name)

    async def save_cursor(self, name: str, block_number: int) -> None:
        await self.cursors.set(name, block_number)

    async def health_check(self) -> dict[str, Any]:
        return await self._client.health_check()
