"""Projection store interface.

Every mutation goes through a conditional save: the caller passes the
version it read (`None` when it saw no row) and the store rejects the
write with `VersionConflictError` if another writer got there first.
The interface has no unconditional overwrite.
"""

from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from nftmirror.data.models.asset import Asset, AssetKey
from nftmirror.data.models.listing import Listing, ListingKey, ListingStatus

T = TypeVar("T")


@dataclass(frozen=True)
class Versioned(Generic[T]):
    """Entity state paired with its optimistic concurrency token."""

    entity: T
    version: int


class ProjectionStore(Protocol):
    """Persistence for the asset and listing projections."""

    async def find_asset(self, key: AssetKey) -> Versioned[Asset] | None:
        """Find an asset by natural key."""
        ...

    async def save_asset(self, asset: Asset, expected_version: int | None) -> int:
        """Insert (expected_version None) or update an asset.

        Returns:
            The new version token.

        Raises:
            VersionConflictError: If the stored version differs.
            DatabaseConnectionError: If the store is unreachable.
        """
        ...

    async def find_listing(self, key: ListingKey) -> Versioned[Listing] | None:
        """Find a listing by natural key."""
        ...

    async def save_listing(self, listing: Listing, expected_version: int | None) -> int:
        """Insert (expected_version None) or update a listing.

        Returns:
            The new version token.

        Raises:
            VersionConflictError: If the stored version differs.
            DatabaseConnectionError: If the store is unreachable.
        """
        ...

    async def list_assets(
        self,
        owner: str | None = None,
        listed: bool | None = None,
        limit: int = 100,
    ) -> list[Asset]:
        """List assets, optionally filtered by owner or listing state."""
        ...

    async def list_listings(
        self,
        status: ListingStatus | None = None,
        seller: str | None = None,
        limit: int = 100,
    ) -> list[Listing]:
        """List listings, optionally filtered by status or seller."""
        ...

    async def get_cursor(self, name: str) -> int | None:
        """Get the last fully ingested block for an ingestion stream."""
        ...

    async def save_cursor(self, name: str, block_number: int) -> None:
        """Record the last fully ingested block for an ingestion stream."""
        ...

    async def health_check(self) -> dict[str, Any]:
        """Report store connectivity."""
        ...
