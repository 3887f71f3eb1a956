"""Listing read API."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status

from nftmirror.api.dependencies import SettingsDep, StoreDep
from nftmirror.api.routes.assets import ADDRESS_PATTERN
from nftmirror.data.models.listing import Listing, ListingKey, ListingStatus

router = APIRouter(prefix="/listings", tags=["listings"])


@router.get("", response_model=list[Listing])
async def list_listings(
    store: StoreDep,
    status_filter: Annotated[ListingStatus | None, Query(alias="status")] = None,
    seller: Annotated[str | None, Query(pattern=ADDRESS_PATTERN)] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[Listing]:
    """List listings, most recently updated first."""
    return await store.list_listings(
        status=status_filter,
        seller=seller.lower() if seller else None,
        limit=limit,
    )


@router.get("/{listing_id}", response_model=Listing)
async def get_listing(
    store: StoreDep,
    settings: SettingsDep,
    listing_id: Annotated[int, Path(ge=0)],
    marketplace: Annotated[str | None, Query(pattern=ADDRESS_PATTERN)] = None,
) -> Listing:
    """Get one listing; defaults to the configured marketplace."""
    key = ListingKey((marketplace or settings.marketplace_address).lower(), listing_id)
    found = await store.find_listing(key)
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Listing {key} not found",
        )
    return found.entity
