"""Asset repository for Supabase.

Table schema expected (see migrations/001_assets_table.sql):
    assets (
        contract_address TEXT NOT NULL,
        token_id TEXT NOT NULL,
        owner TEXT NOT NULL,
        creator TEXT,
        minted_at TIMESTAMPTZ,
        metadata_uri TEXT,
        metadata JSONB,
        history JSONB NOT NULL DEFAULT '[]',
        last_transfer_block BIGINT NOT NULL,
        last_transfer_log_index INTEGER NOT NULL,
        listing_marketplace TEXT,
        listing_id TEXT,
        seller TEXT,
        price TEXT,
        version INTEGER NOT NULL,
        created_at TIMESTAMPTZ DEFAULT NOW(),
        updated_at TIMESTAMPTZ DEFAULT NOW(),
        PRIMARY KEY (contract_address, token_id)
    )

uint256 columns (token_id, listing_id, price) are TEXT so that values
above 2**63 survive the round trip.
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from postgrest.exceptions import APIError

from nftmirror.core.exceptions import VersionConflictError
from nftmirror.data.models.asset import Asset, AssetKey
from nftmirror.data.protocols import Versioned
from nftmirror.data.supabase.client import SupabaseClient

log = structlog.get_logger(__name__)

UNIQUE_VIOLATION = "23505"


class AssetRepository:
    """Repository for the assets table with version-checked writes.

    Example:
        client = await get_supabase_client()
        repo = AssetRepository(client)
        found = await repo.get_by_key(AssetKey("0xabc...", 7))
        if found:
            await repo.save(updated_asset, expected_version=found.version)
    """

    TABLE_NAME = "assets"

    def __init__(self, client: SupabaseClient) -> None:
        """Initialize repository with Supabase client.

        Args:
            client: Connected SupabaseClient instance.
        """
        self._client = client

    async def get_by_key(self, key: AssetKey) -> Versioned[Asset] | None:
        """Get an asset and its version by natural key.

        Args:
            key: (contract_address, token_id).

        Returns:
            Versioned asset if found, None otherwise.
        """
        result = await self._client.execute(
            self._client.table(self.TABLE_NAME)
            .select("*")
            .eq("contract_address", key.contract_address)
            .eq("token_id", str(key.token_id))
            .limit(1)
        )

        if not result.data:
            return None

        row = result.data[0]
        return Versioned(self._row_to_asset(row), int(row["version"]))

    async def save(self, asset: Asset, expected_version: int | None) -> int:
        """Insert or conditionally update an asset.

        Args:
            asset: New asset state.
            expected_version: Version read before computing `asset`, or None
                if no row existed.

        Returns:
            New version token.

        Raises:
            VersionConflictError: If another writer changed the row first.
        """
        record = self._asset_to_row(asset)

        if expected_version is None:
            record["version"] = 1
            try:
                await self._client.execute(
                    self._client.table(self.TABLE_NAME).insert(record)
                )
            except APIError as e:
                if e.code == UNIQUE_VIOLATION:
                    raise VersionConflictError("asset", asset.key, None) from e
                log.error("asset_insert_failed", key=str(asset.key), error=str(e))
                raise
            log.debug("asset_inserted", key=str(asset.key))
            return 1

        new_version = expected_version + 1
        record["version"] = new_version
        result = await self._client.execute(
            self._client.table(self.TABLE_NAME)
            .update(record)
            .eq("contract_address", asset.contract_address)
            .eq("token_id", str(asset.token_id))
            .eq("version", expected_version)
        )

        if not result.data:
            raise VersionConflictError("asset", asset.key, expected_version)

        log.debug("asset_updated", key=str(asset.key), version=new_version)
        return new_version

    async def list_assets(
        self,
        owner: str | None = None,
        listed: bool | None = None,
        limit: int = 100,
    ) -> list[Asset]:
        """List assets ordered by most recent update.

        Args:
            owner: Only assets held by this address.
            listed: True for listed assets only, False for unlisted only.
            limit: Maximum number of assets to return.

        Returns:
            List of Asset models.
        """
        query = self._client.table(self.TABLE_NAME).select("*")
        if owner is not None:
            query = query.eq("owner", owner.lower())
        if listed is True:
            query = query.not_.is_("listing_id", "null")
        elif listed is False:
            query = query.is_("listing_id", "null")

        result = await self._client.execute(
            query.order("updated_at", desc=True).limit(limit)
        )
        return [self._row_to_asset(row) for row in result.data or []]

    @staticmethod
    def _asset_to_row(asset: Asset) -> dict[str, Any]:
        return {
            "contract_address": asset.contract_address,
            "token_id": str(asset.token_id),
            "owner": asset.owner,
            "creator": asset.creator,
            "minted_at": asset.minted_at.isoformat() if asset.minted_at else None,
            "metadata_uri": asset.metadata_uri,
            "metadata": asset.metadata.model_dump(mode="json") if asset.metadata else None,
            "history": [entry.model_dump(mode="json") for entry in asset.history],
            "last_transfer_block": asset.last_transfer_block,
            "last_transfer_log_index": asset.last_transfer_log_index,
            "listing_marketplace": asset.listing_marketplace,
            "listing_id": str(asset.listing_id) if asset.listing_id is not None else None,
            "seller": asset.seller,
            "price": str(asset.price) if asset.price is not None else None,
            "updated_at": datetime.now(UTC).isoformat(),
        }

    @staticmethod
    def _row_to_asset(row: dict[str, Any]) -> Asset:
        listing_id = row.get("listing_id")
        price = row.get("price")
        return Asset(
            contract_address=row["contract_address"],
            token_id=int(row["token_id"]),
            owner=row["owner"],
            creator=row.get("creator"),
            minted_at=row.get("minted_at"),
            metadata_uri=row.get("metadata_uri"),
            metadata=row.get("metadata"),
            history=row.get("history") or [],
            last_transfer_block=row.get("last_transfer_block") or 0,
            last_transfer_log_index=row.get("last_transfer_log_index") or 0,
            listing_marketplace=row.get("listing_marketplace"),
            listing_id=int(listing_id) if listing_id is not None else None,
            seller=row.get("seller"),
            price=int(price) if price is not None else None,
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )
