"""Chain-level constants."""

from typing import Final

ZERO_ADDRESS: Final[str] = "0x0000000000000000000000000000000000000000"

# Event names as emitted by the registry and marketplace contracts
TRANSFER_EVENT: Final[str] = "Transfer"
ITEM_LISTED_EVENT: Final[str] = "ItemListed"
ITEM_SOLD_EVENT: Final[str] = "ItemSold"
LISTING_CANCELLED_EVENT: Final[str] = "ListingCancelled"

# Block timestamp cache
BLOCK_TIMESTAMP_CACHE_SIZE: Final[int] = 4096
