"""Test data factories using factory_boy.

These factories generate realistic test data for NFT Mirror models.
"""

from tests.factories.asset import AssetFactory, TransferRecordFactory
from tests.factories.events import (
    FIXED_NOW,
    MARKETPLACE,
    NFT_CONTRACT,
    EventRecordFactory,
    generate_address,
    generate_tx_hash,
    item_listed,
    item_sold,
    listing_cancelled,
    transfer,
)
from tests.factories.listing import ListingFactory

__all__ = [
    "FIXED_NOW",
    "MARKETPLACE",
    "NFT_CONTRACT",
    "AssetFactory",
    "EventRecordFactory",
    "ListingFactory",
    "TransferRecordFactory",
    "generate_address",
    "generate_tx_hash",
    "item_listed",
    "item_sold",
    "listing_cancelled",
    "transfer",
]
