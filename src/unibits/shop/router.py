"""Shop API endpoints — catalogue, inventory, purchase and equip."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.auth.dependencies import get_current_profile, get_user_role
from unibits.database import get_session
from unibits.db.models import Profile, ShopItem, UserInventory
from unibits.errors import retry_on_conflict
from unibits.progression.ledger import profile_snapshot
from unibits.progression.schemas import ProfileResponse
from unibits.shop.schemas import (
    EquipRequest,
    EquipResponse,
    InventoryEntryResponse,
    InventoryResponse,
    PurchaseRequest,
    PurchaseResponse,
    ShopCatalogResponse,
    ShopItemResponse,
)
from unibits.shop.service import equip, list_inventory, list_items, purchase

router = APIRouter(prefix="/api/v1", tags=["Shop"])


def item_response(item: ShopItem, owned: bool = False) -> ShopItemResponse:
    return ShopItemResponse(
        id=item.id,
        name=item.name,
        description=item.description,
        type=item.type,
        price=item.price,
        image_url=item.image_url,
        asset_download_url=item.asset_download_url if owned else None,
        is_active=item.is_active,
        owned=owned,
    )


@router.get("/shop/items", response_model=ShopCatalogResponse)
async def get_catalog(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Active shop items, flagged with ownership for the caller."""
    items = await list_items(db)
    owned = {entry.item_id for entry in await list_inventory(db, profile.user_id)}
    return ShopCatalogResponse(items=[item_response(i, i.id in owned) for i in items])


@router.get("/me/inventory", response_model=InventoryResponse)
async def get_inventory(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Items owned by the caller, with currently equipped cosmetics."""
    entries = await list_inventory(db, profile.user_id)
    return InventoryResponse(
        items=[
            InventoryEntryResponse(item=item_response(e.item, owned=True), purchased_at=e.purchased_at)
            for e in entries
        ],
        current_avatar_id=profile.current_avatar_id,
        current_frame_id=profile.current_frame_id,
    )


@router.post("/shop/items/{item_id}/purchase", response_model=PurchaseResponse)
async def purchase_item(
    item_id: int,
    body: PurchaseRequest,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Buy an item at its current price."""
    user_id = profile.user_id

    async def _purchase() -> tuple[UserInventory, int]:
        entry, buyer = await purchase(db, user_id, item_id, body.expected_price)
        coins = buyer.coins
        await db.commit()
        return entry, coins

    entry, coins = await retry_on_conflict(db, _purchase)
    return PurchaseResponse(
        item=item_response(entry.item, owned=True),
        purchased_at=entry.purchased_at,
        coins_remaining=coins,
    )


@router.post("/me/equip", response_model=EquipResponse)
async def equip_item(
    body: EquipRequest,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Equip an owned avatar or frame."""
    user_id = profile.user_id

    async def _equip() -> Profile:
        updated = await equip(db, user_id, body.item_id, body.slot)
        await db.commit()
        return updated

    updated = await retry_on_conflict(db, _equip)
    role = await get_user_role(db, updated.user_id)
    return EquipResponse(profile=ProfileResponse(**profile_snapshot(updated), role=role))
