"""In-memory projection store.

Backs `STORE_BACKEND=memory` for local runs against a dev chain, and the
projector test-suite. Versions are per-entity counters starting at 1; each
operation yields to the event loop once so that concurrent handlers
interleave the way they do against a networked store.
"""

import asyncio
from datetime import UTC, datetime
from typing import Any

import structlog

from nftmirror.core.exceptions import VersionConflictError
from nftmirror.data.models.asset import Asset, AssetKey
from nftmirror.data.models.listing import Listing, ListingKey, ListingStatus
from nftmirror.data.protocols import Versioned

log = structlog.get_logger(__name__)


class InMemoryProjectionStore:
    """Dictionary-backed implementation of `ProjectionStore`."""

    def __init__(self) -> None:
        self._assets: dict[AssetKey, Versioned[Asset]] = {}
        self._listings: dict[ListingKey, Versioned[Listing]] = {}
        self._cursors: dict[str, int] = {}
        self.write_count = 0

    async def find_asset(self, key: AssetKey) -> Versioned[Asset] | None:
        await asyncio.sleep(0)
        found = self._assets.get(key)
        if found is None:
            return None
        return Versioned(found.entity.model_copy(deep=True), found.version)

    async def save_asset(self, asset: Asset, expected_version: int | None) -> int:
        await asyncio.sleep(0)
        return self._compare_and_set(self._assets, "asset", asset.key, asset, expected_version)

    async def find_listing(self, key: ListingKey) -> Versioned[Listing] | None:
        await asyncio.sleep(0)
        found = self._listings.get(key)
        if found is None:
            return None
        return Versioned(found.entity.model_copy(deep=True), found.version)

    async def save_listing(self, listing: Listing, expected_version: int | None) -> int:
        await asyncio.sleep(0)
        return self._compare_and_set(
            self._listings, "listing", listing.key, listing, expected_version
        )

    def _compare_and_set(
        self,
        table: dict[Any, Versioned[Any]],
        entity: str,
        key: Any,
        value: Asset | Listing,
        expected_version: int | None,
    ) -> int:
        current = table.get(key)
        current_version = current.version if current is not None else None
        if current_version != expected_version:
            log.debug(
                "memory_store_conflict",
                entity=entity,
                key=str(key),
                expected=expected_version,
                actual=current_version,
            )
            raise VersionConflictError(entity, key, expected_version)

        now = datetime.now(UTC)
        stored = value.model_copy(deep=True, update={"updated_at": now})
        if stored.created_at is None:
            stored.created_at = now
        new_version = (current_version or 0) + 1
        table[key] = Versioned(stored, new_version)
        self.write_count += 1
        return new_version

    async def list_assets(
        self,
        owner: str | None = None,
        listed: bool | None = None,
        limit: int = 100,
    ) -> list[Asset]:
        await asyncio.sleep(0)
        assets = [v.entity.model_copy(deep=True) for v in self._assets.values()]
        if owner is not None:
            assets = [a for a in assets if a.owner == owner.lower()]
        if listed is not None:
            assets = [a for a in assets if a.is_listed == listed]
        return assets[:limit]

    async def list_listings(
        self,
        status: ListingStatus | None = None,
        seller: str | None = None,
        limit: int = 100,
    ) -> list[Listing]:
        await asyncio.sleep(0)
        listings = [v.entity.model_copy(deep=True) for v in self._listings.values()]
        if status is not None:
            listings = [item for item in listings if item.status == status]
        if seller is not None:
            listings = [item for item in listings if item.seller == seller.lower()]
        return listings[:limit]

    async def get_cursor(self, name: str) -> int | None:
        return self._cursors.get(name)

    async def save_cursor(self, name: str, block_number: int) -> None:
        self._cursors[name] = block_number

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "connected",
            "healthy": True,
            "assets": len(self._assets),
            "listings": len(self._listings),
        }
