"""Projection entity and event models."""

from nftmirror.data.models.asset import Asset, AssetKey, TransferRecord
from nftmirror.data.models.event import (
    EventRecord,
    ItemListedEvent,
    ItemSoldEvent,
    ListingCancelledEvent,
    TransferEvent,
)
from nftmirror.data.models.listing import Listing, ListingKey, ListingStatus
from nftmirror.data.models.metadata import (
    EnrichmentResult,
    MetadataAttribute,
    MetadataDocument,
)

__all__ = [
    "Asset",
    "AssetKey",
    "EnrichmentResult",
    "EventRecord",
    "ItemListedEvent",
    "ItemSoldEvent",
    "Listing",
    "ListingCancelledEvent",
    "ListingKey",
    "ListingStatus",
    "MetadataAttribute",
    "MetadataDocument",
    "TransferEvent",
    "TransferRecord",
]
