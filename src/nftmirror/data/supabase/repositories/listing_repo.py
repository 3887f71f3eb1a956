"""Listing repository for Supabase.

Table schema expected (see migrations/002_listings_table.sql):
    listings (
        marketplace_address TEXT NOT NULL,
        listing_id TEXT NOT NULL,
        nft_contract TEXT,
        token_id TEXT,
        seller TEXT,
        price TEXT,
        status TEXT NOT NULL CHECK (status IN ('active', 'sold', 'cancelled')),
        buyer TEXT,
        listed_block BIGINT,
        closed_block BIGINT,
        version INTEGER NOT NULL,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW(),
        PRIMARY KEY (marketplace_address, listing_id)
    )
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from postgrest.exceptions import APIError

from nftmirror.core.exceptions import VersionConflictError
from nftmirror.data.models.listing import Listing, ListingKey, ListingStatus
from nftmirror.data.protocols import Versioned
from nftmirror.data.supabase.client import SupabaseClient
from nftmirror.data.supabase.repositories.asset_repo import UNIQUE_VIOLATION

log = structlog.get_logger(__name__)


class ListingRepository:
    """Repository for the listings table with version-checked writes."""

    TABLE_NAME = "listings"

    def __init__(self, client: SupabaseClient) -> None:
        """Initialize repository with Supabase client.

        Args:
            client: Connected SupabaseClient instance.
        """
        self._client = client

    async def get_by_key(self, key: ListingKey) -> Versioned[Listing] | None:
        """Get a listing and its version by natural key."""
        result = await self._client.execute(
            self._client.table(self.TABLE_NAME)
            .select("*")
            .eq("marketplace_address", key.marketplace_address)
            .eq("listing_id", str(key.listing_id))
            .limit(1)
        )

        if not result.data:
            return None

        row = result.data[0]
        return Versioned(self._row_to_listing(row), int(row["version"]))

    async def save(self, listing: Listing, expected_version: int | None) -> int:
        """Insert or conditionally update a listing.

        Args:
            listing: New listing state.
            expected_version: Version read before computing `listing`, or None
                if no row existed.

        Returns:
            New version token.

        Raises:
            VersionConflictError: If another writer changed the row first.
        """
        record = self._listing_to_row(listing)

        if expected_version is None:
            record["version"] = 1
            try:
                await self._client.execute(
                    self._client.table(self.TABLE_NAME).insert(record)
                )
            except APIError as e:
                if e.code == UNIQUE_VIOLATION:
                    raise VersionConflictError("listing", listing.key, None) from e
                log.error("listing_insert_failed", key=str(listing.key), error=str(e))
                raise
            return 1

        new_version = expected_version + 1
        record["version"] = new_version
        result = await self._client.execute(
            self._client.table(self.TABLE_NAME)
            .update(record)
            .eq("marketplace_address", listing.marketplace_address)
            .eq("listing_id", str(listing.listing_id))
            .eq("version", expected_version)
        )

        if not result.data:
            raise VersionConflictError("listing", listing.key, expected_version)
        return new_version

    async def list_listings(
        self,
        status: ListingStatus | None = None,
        seller: str | None = None,
        limit: int = 100,
    ) -> list[Listing]:
        """List listings ordered by most recent update.

        Args:
            status: Only listings in this status.
            seller: Only listings created by this address.
            limit: Maximum number of listings to return.

        Returns:
            List of Listing models.
        """
        query = self._client.table(self.TABLE_NAME).select("*")
        if status is not None:
            query = query.eq("status", status.value)
        if seller is not None:
            query = query.eq("seller", seller.lower())

        result = await self._client.execute(
            query.order("updated_at", desc=True).limit(limit)
        )
        return [self._row_to_listing(row) for row in result.data or []]

    @staticmethod
    def _listing_to_row(listing: Listing) -> dict[str, Any]:
        return {
            "marketplace_address": listing.marketplace_address,
            "listing_id": str(listing.listing_id),
            "nft_contract": listing.nft_contract,
            "token_id": str(listing.token_id) if listing.token_id is not None else None,
            "seller": listing.seller,
            "price": str(listing.price) if listing.price is not None else None,
            "status": listing.status.value,
            "buyer": listing.buyer,
            "listed_block": listing.listed_block,
            "closed_block": listing.closed_block,
            "updated_at": datetime.now(UTC).isoformat(),
        }

    @staticmethod
    def _row_to_listing(row: dict[str, Any]) -> Listing:
        token_id = row.get("token_id")
        price = row.get("price")
        return Listing(
            marketplace_address=row["marketplace_address"],
            listing_id=int(row["listing_id"]),
            nft_contract=row.get("nft_contract"),
            token_id=int(token_id) if token_id is not None else None,
            seller=row.get("seller"),
            price=int(price) if price is not None else None,
            status=ListingStatus(row["status"]),
            buyer=row.get("buyer"),
            listed_block=row.get("listed_block"),
            closed_block=row.get("closed_block"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
