"""Asset projection models.

An asset is one token of one registry contract. It is created by the first
Transfer seen for its key and never deleted.
"""

from datetime import datetime
from typing import NamedTuple

from pydantic import BaseModel, Field

from nftmirror.data.models.event import BlockOrder
from nftmirror.data.models.metadata import MetadataDocument


class AssetKey(NamedTuple):
    """Natural key of an asset."""

    contract_address: str
    token_id: int

    def __str__(self) -> str:
        return f"{self.contract_address}#{self.token_id}"


class TransferRecord(BaseModel):
    """One entry of an asset's transfer history."""

    from_address: str
    to_address: str
    timestamp: datetime
    block_number: int
    log_index: int = 0
    transaction_hash: str | None = None

    @property
    def order(self) -> BlockOrder:
        return (self.block_number, self.log_index)


class Asset(BaseModel):
    """Ownership record for one token.

    Attributes:
        contract_address: Registry contract (lowercase hex).
        token_id: Token id (uint256, lossless).
        owner: Recipient of the applied transfer with the greatest block order.
        creator: Recipient of the mint transfer, once seen.
        minted_at: Timestamp of the mint transfer, once seen.
        metadata_uri: tokenURI reported by the contract.
        metadata: Resolved metadata document (best effort).
        history: Transfers ordered by block order, without duplicates.
        last_transfer_block: Block of the transfer that set `owner`.
        last_transfer_log_index: Log index of the transfer that set `owner`.
        listing_marketplace: Marketplace of the active listing, if any.
        listing_id: Active listing for this token, if any.
        seller: Seller of the active listing.
        price: Price of the active listing (wei, lossless).
        created_at: Projection creation time.
        updated_at: Last projection update.
    """

    contract_address: str
    token_id: int
    owner: str
    creator: str | None = None
    minted_at: datetime | None = None
    metadata_uri: str | None = None
    metadata: MetadataDocument | None = None
    history: list[TransferRecord] = Field(default_factory=list)
    last_transfer_block: int = 0
    last_transfer_log_index: int = 0
    listing_marketplace: str | None = None
    listing_id: int | None = None
    seller: str | None = None
    price: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> AssetKey:
        return AssetKey(self.contract_address, self.token_id)

    @property
    def last_transfer_order(self) -> BlockOrder:
        return (self.last_transfer_block, self.last_transfer_log_index)

    @property
    def is_listed(self) -> bool:
        return self.listing_id is not None
