"""Asset read API."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status

from nftmirror.api.dependencies import StoreDep
from nftmirror.data.models.asset import Asset, AssetKey

router = APIRouter(prefix="/assets", tags=["assets"])

ADDRESS_PATTERN = r"^0x[0-9a-fA-F]{40}$"


@router.get("", response_model=list[Asset])
async def list_assets(
    store: StoreDep,
    owner: Annotated[str | None, Query(pattern=ADDRESS_PATTERN)] = None,
    listed: bool | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[Asset]:
    """List assets, most recently updated first."""
    return await store.list_assets(
        owner=owner.lower() if owner else None,
        listed=listed,
        limit=limit,
    )


@router.get("/{contract_address}/{token_id}", response_model=Asset)
async def get_asset(
    store: StoreDep,
    contract_address: Annotated[str, Path(pattern=ADDRESS_PATTERN)],
    token_id: Annotated[int, Path(ge=0)],
) -> Asset:
    """Get one asset by contract and token id."""
    found = await store.find_asset(AssetKey(contract_address.lower(), token_id))
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Asset {contract_address.lower()}#{token_id} not found",
        )
    return found.entity
