"""Cross-projection consistency check.

The asset/listing invariant is not enforced by the database: an asset's
listing reference must name an existing ACTIVE listing for the same token.
This module finds the assets that break it, for tests and for operators
auditing a store snapshot.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from nftmirror.data.models.asset import Asset, AssetKey
from nftmirror.core.projection.transitions import listing_reference
from nftmirror.data.models.listing import Listing, ListingStatus


@dataclass(frozen=True)
class ConsistencyViolation:
    """An asset whose listing reference breaks the invariant."""

    asset_key: AssetKey
    listing_id: int | None
    reason: str


def find_consistency_violations(
    assets: Iterable[Asset],
    listings: Iterable[Listing],
) -> list[ConsistencyViolation]:
    """Check every asset's listing reference against the listings.

    Args:
        assets: Asset snapshot.
        listings: Listing snapshot.

    Returns:
        One violation per offending asset, empty when consistent.
    """
    by_key = {listing.key: listing for listing in listings}
    violations: list[ConsistencyViolation] = []

    for asset in assets:
        if asset.listing_id is None:
            dangling = (asset.listing_marketplace, asset.seller, asset.price)
            if any(value is not None for value in dangling):
                violations.append(
                    ConsistencyViolation(asset.key, None, "dangling listing reference")
                )
            continue

        reference = listing_reference(asset)
        listing = by_key.get(reference) if reference is not None else None
        if listing is None:
            reason = "listing missing"
        elif listing.status is not ListingStatus.ACTIVE:
            reason = f"listing {listing.status.value}"
        elif listing.asset_key != asset.key:
            reason = "listing belongs to another token"
        elif (asset.seller, asset.price) != (listing.seller, listing.price):
            reason = "seller/price out of sync"
        else:
            continue
        violations.append(ConsistencyViolation(asset.key, asset.listing_id, reason))

    return violations
