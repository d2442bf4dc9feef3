"""Shop service — catalogue, purchases and equipping cosmetics."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.db.models import Profile, ShopItem, UserInventory
from unibits.errors import (
    AlreadyOwnedError,
    InsufficientFundsError,
    InvalidStateError,
    ItemUnavailableError,
    UnauthorizedError,
    conflict_guard,
)
from unibits.progression.ledger import lock_profile

logger = logging.getLogger(__name__)


class ItemType(str, Enum):
    AVATAR = "avatar"
    FRAME = "frame"
    ASSET_PACK = "asset_pack"
    THEME = "theme"


class EquipSlot(str, Enum):
    AVATAR = "avatar"
    FRAME = "frame"


async def list_items(db: AsyncSession, include_inactive: bool = False) -> list[ShopItem]:
    """Catalogue ordered by type then price. Inactive items only for admins."""
    stmt = select(ShopItem).order_by(ShopItem.type, ShopItem.price, ShopItem.id)
    if not include_inactive:
        stmt = stmt.where(ShopItem.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_inventory(db: AsyncSession, user_id: str) -> list[UserInventory]:
    result = await db.execute(
        select(UserInventory)
        .where(UserInventory.user_id == user_id)
        .order_by(UserInventory.purchased_at.desc(), UserInventory.id.desc())
    )
    return list(result.scalars().all())


async def owns_item(db: AsyncSession, user_id: str, item_id: int) -> bool:
    result = await db.execute(
        select(UserInventory.id).where(
            UserInventory.user_id == user_id,
            UserInventory.item_id == item_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def _record_inventory(db: AsyncSession, user_id: str, item: ShopItem) -> UserInventory:
    entry = UserInventory(
        user_id=user_id,
        item_id=item.id,
        item=item,
        purchased_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.flush()
    return entry


async def purchase(
    db: AsyncSession,
    user_id: str,
    item_id: int,
    expected_price: int,
) -> tuple[UserInventory, Profile]:
    """Buy an item: debit coins and grant inventory atomically.

    Checks, in order: item exists and is active, price matches, coins cover the
    price, item not already owned. The profile row is locked for the whole
    transaction so concurrent purchases by one user serialise on the balance.
    """
    item = await db.get(ShopItem, item_id)
    if item is None or not item.is_active:
        raise ItemUnavailableError("Item is not available", item_id=item_id)
    if expected_price != item.price:
        raise InvalidStateError(
            "Item price has changed",
            item_id=item_id,
            expected_price=expected_price,
            price=item.price,
        )

    async with conflict_guard():
        profile = await lock_profile(db, user_id)
        if profile.coins < item.price:
            raise InsufficientFundsError(
                "Not enough coins",
                shortfall=item.price - profile.coins,
                item_id=item_id,
                price=item.price,
                coins=profile.coins,
            )
        if await owns_item(db, user_id, item_id):
            raise AlreadyOwnedError("Item already owned", item_id=item_id)

        try:
            async with db.begin_nested():
                profile.coins = profile.coins - item.price
                profile.updated_at = datetime.now(timezone.utc)
                await db.flush()
                entry = await _record_inventory(db, user_id, item)
        except IntegrityError:
            # Bought concurrently; the savepoint rollback restored the balance
            await db.refresh(profile)
            raise AlreadyOwnedError("Item already owned", item_id=item_id) from None

    logger.info("Purchase: %s bought item %d for %d coins", user_id, item_id, item.price)
    return entry, profile


async def equip(db: AsyncSession, user_id: str, item_id: int, slot: EquipSlot | str) -> Profile:
    """Equip an owned avatar or frame item."""
    slot = EquipSlot(slot)
    item = await db.get(ShopItem, item_id)
    if item is None:
        raise ItemUnavailableError("Item not found", item_id=item_id)
    if not await owns_item(db, user_id, item_id):
        raise UnauthorizedError("Item is not in your inventory", item_id=item_id)
    if item.type != slot.value:
        raise InvalidStateError(
            f"A {item.type} item cannot be equipped in the {slot.value} slot",
            item_id=item_id,
            slot=slot.value,
        )

    async with conflict_guard():
        profile = await lock_profile(db, user_id)
        if slot is EquipSlot.AVATAR:
            profile.current_avatar_id = item_id
        else:
            profile.current_frame_id = item_id
        profile.updated_at = datetime.now(timezone.utc)
        await db.flush()
    logger.info("Equip: %s equipped item %d as %s", user_id, item_id, slot.value)
    return profile
