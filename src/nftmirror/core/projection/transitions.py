"""Pure state transitions for the asset and listing projections.

Every function here takes the current entity state (or None when the
entity does not exist yet) plus a typed event and returns the next state.
Nothing here touches the store, so the projector can re-run a transition
after a version conflict without side effects.

Functions return None when the event does not change the entity, which
lets the caller skip the write entirely on redelivery.
"""

from bisect import bisect_left
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from nftmirror.data.models.asset import Asset, TransferRecord
from nftmirror.data.models.event import ItemListedEvent, TransferEvent
from nftmirror.data.models.listing import Listing, ListingKey, ListingStatus
from nftmirror.data.models.metadata import EnrichmentResult


class AssetEffect(str, Enum):
    """Cross-entity effect of a listing transition on the referenced asset."""

    NONE = "none"
    ATTACH = "attach"
    DETACH = "detach"


@dataclass(frozen=True)
class ListingTransition:
    """Result of applying a marketplace event to a listing.

    Attributes:
        listing: Listing state after the event.
        changed: Whether `listing` differs from the stored state.
        asset_effect: What the projector must do to the referenced asset.
    """

    listing: Listing
    changed: bool
    asset_effect: AssetEffect


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------


def transfer_record(event: TransferEvent, now: datetime) -> TransferRecord:
    """Build the history entry for a transfer."""
    block_number, log_index = event.order
    return TransferRecord(
        from_address=event.from_address,
        to_address=event.to_address,
        timestamp=event.timestamp or now,
        block_number=block_number,
        log_index=log_index,
        transaction_hash=event.transaction_hash,
    )


def merge_history(
    history: list[TransferRecord], record: TransferRecord
) -> list[TransferRecord] | None:
    """Insert a transfer into history at its block-order position.

    Returns:
        The new history, or None if a transfer with the same block order
        is already recorded.
    """
    orders = [entry.order for entry in history]
    position = bisect_left(orders, record.order)
    if position < len(orders) and orders[position] == record.order:
        return None
    return [*history[:position], record, *history[position:]]


def new_asset_from_transfer(
    event: TransferEvent,
    now: datetime,
    enrichment: EnrichmentResult | None = None,
) -> Asset:
    """Create the asset for the first transfer seen for its key.

    A transfer out of the zero address is a mint and fixes creator and
    minted_at. Any other first-seen transfer leaves them unset: the token
    existed before the projection started tracking it.
    """
    record = transfer_record(event, now)
    block_number, log_index = event.order
    return Asset(
        contract_address=event.contract_address,
        token_id=event.token_id,
        owner=event.to_address,
        creator=event.to_address if event.is_mint else None,
        minted_at=record.timestamp if event.is_mint else None,
        metadata_uri=enrichment.metadata_uri if enrichment else None,
        metadata=enrichment.metadata if enrichment else None,
        history=[record],
        last_transfer_block=block_number,
        last_transfer_log_index=log_index,
    )


def apply_transfer(asset: Asset, event: TransferEvent, now: datetime) -> Asset | None:
    """Apply a transfer to an existing asset.

    Ownership follows the transfer with the greatest block order; a
    transfer at or below the last applied order never moves `owner`.
    Late transfers are still merged into history, and a late mint fills
    creator/minted_at if they were never set.

    Returns:
        The updated asset, or None if the transfer was already applied.
    """
    record = transfer_record(event, now)
    history = merge_history(asset.history, record)
    if history is None:
        return None

    update: dict[str, object] = {"history": history}
    if event.order > asset.last_transfer_order:
        block_number, log_index = event.order
        update["owner"] = event.to_address
        update["last_transfer_block"] = block_number
        update["last_transfer_log_index"] = log_index
    if event.is_mint and asset.creator is None:
        update["creator"] = event.to_address
        update["minted_at"] = record.timestamp

    return asset.model_copy(update=update)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


def on_item_listed(current: Listing | None, event: ItemListedEvent) -> ListingTransition:
    """Apply ItemListed.

    - No listing yet: create it as active and attach it to the asset.
    - Listing already known with its token details: redelivery, nothing
      changes; an active listing is re-attached in case the asset was
      projected after the first delivery.
    - Listing closed before its ItemListed was seen: backfill token details
      and keep the terminal status.
    """
    if current is None:
        listing = Listing(
            marketplace_address=event.marketplace_address,
            listing_id=event.listing_id,
            nft_contract=event.nft_contract,
            token_id=event.token_id,
            seller=event.seller,
            price=event.price,
            status=ListingStatus.ACTIVE,
            listed_block=event.order[0],
        )
        return ListingTransition(listing, changed=True, asset_effect=AssetEffect.ATTACH)

    if current.has_details:
        effect = AssetEffect.NONE if current.status.is_terminal else AssetEffect.ATTACH
        return ListingTransition(current, changed=False, asset_effect=effect)

    backfilled = current.model_copy(
        update={
            "nft_contract": event.nft_contract,
            "token_id": event.token_id,
            "seller": event.seller,
            "price": event.price,
            "listed_block": event.order[0],
        }
    )
    effect = AssetEffect.NONE if backfilled.status.is_terminal else AssetEffect.ATTACH
    return ListingTransition(backfilled, changed=True, asset_effect=effect)


def on_listing_closed(
    current: Listing | None,
    key: ListingKey,
    status: ListingStatus,
    block_number: int,
    buyer: str | None = None,
) -> ListingTransition:
    """Apply ItemSold (status SOLD) or ListingCancelled (status CANCELLED).

    Only ACTIVE listings move. A terminal listing absorbs any later close
    event unchanged; the asset is still checked so that a reference left
    behind by an earlier failed attempt gets cleared.

    A close event for an unknown listing records a terminal listing without
    token details, so that a late ItemListed cannot resurrect it as active.
    """
    if not status.is_terminal:
        raise ValueError(f"{status.value} is not a closing status")

    if current is None:
        stub = Listing(
            marketplace_address=key.marketplace_address,
            listing_id=key.listing_id,
            status=status,
            buyer=buyer,
            closed_block=block_number,
        )
        return ListingTransition(stub, changed=True, asset_effect=AssetEffect.NONE)

    if current.status.is_terminal:
        return ListingTransition(current, changed=False, asset_effect=AssetEffect.DETACH)

    closed = current.model_copy(
        update={"status": status, "buyer": buyer, "closed_block": block_number}
    )
    return ListingTransition(closed, changed=True, asset_effect=AssetEffect.DETACH)


def listing_reference(asset: Asset) -> ListingKey | None:
    """Key of the listing an asset points at, if any."""
    if asset.listing_id is None or asset.listing_marketplace is None:
        return None
    return ListingKey(asset.listing_marketplace, asset.listing_id)


def attach_listing(
    asset: Asset,
    listing: Listing,
    referenced: Listing | None = None,
) -> Asset | None:
    """Point an asset at an active listing for the same token.

    An asset that already points at another active listing keeps it unless
    the incoming listing was created later, so a late ItemListed for an
    older listing never displaces a newer one.

    Args:
        asset: Current asset state.
        listing: Listing to attach.
        referenced: Listing the asset currently points at, when it exists.

    Returns:
        The updated asset, or None if the listing is not active, belongs to
        another token, is older than the active referenced listing, or is
        already referenced with the same terms.
    """
    if listing.status is not ListingStatus.ACTIVE or listing.asset_key != asset.key:
        return None

    reference = listing_reference(asset)
    if reference == listing.key:
        if (asset.seller, asset.price) == (listing.seller, listing.price):
            return None
    elif (
        referenced is not None
        and referenced.key == reference
        and referenced.status is ListingStatus.ACTIVE
        and referenced.listed_order > listing.listed_order
    ):
        return None

    return asset.model_copy(
        update={
            "listing_marketplace": listing.marketplace_address,
            "listing_id": listing.listing_id,
            "seller": listing.seller,
            "price": listing.price,
        }
    )


def detach_listing(asset: Asset, key: ListingKey) -> Asset | None:
    """Clear an asset's listing reference if it points at `key`.

    An asset that has since been re-listed under another id, or on another
    marketplace, is left alone.
    """
    if listing_reference(asset) != key:
        return None
    return asset.model_copy(
        update={"listing_marketplace": None, "listing_id": None, "seller": None, "price": None}
    )
