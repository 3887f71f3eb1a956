"""Listing projection models."""

from datetime import datetime
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, Field

from nftmirror.data.models.asset import AssetKey


class ListingStatus(str, Enum):
    """Listing lifecycle status.

    Transitions only move forward: ACTIVE -> SOLD or ACTIVE -> CANCELLED.
    """

    ACTIVE = "active"
    SOLD = "sold"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ListingStatus.ACTIVE


class ListingKey(NamedTuple):
    """Natural key of a listing, scoped to the emitting marketplace."""

    marketplace_address: str
    listing_id: int

    def __str__(self) -> str:
        return f"{self.marketplace_address}/{self.listing_id}"


class Listing(BaseModel):
    """Marketplace offer.

    A listing closed before its ItemListed event was seen has no token
    details (`nft_contract`, `token_id`, `seller`, `price` are None) until
    that event arrives and backfills them.
    """

    marketplace_address: str
    listing_id: int
    nft_contract: str | None = None
    token_id: int | None = None
    seller: str | None = None
    price: int | None = Field(default=None, description="Price in wei (lossless)")
    status: ListingStatus = ListingStatus.ACTIVE
    buyer: str | None = None
    listed_block: int | None = None
    closed_block: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> ListingKey:
        return ListingKey(self.marketplace_address, self.listing_id)

    @property
    def asset_key(self) -> AssetKey | None:
        if self.nft_contract is None or self.token_id is None:
            return None
        return AssetKey(self.nft_contract, self.token_id)

    @property
    def has_details(self) -> bool:
        return self.asset_key is not None

    @property
    def listed_order(self) -> tuple[int, int]:
        """Creation order between listings of one token (listed block, then id)."""
        return (self.listed_block or 0, self.listing_id)
