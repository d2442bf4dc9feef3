"""Pydantic schemas for shop endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from unibits.progression.schemas import ProfileResponse


class ShopItemResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    type: str
    price: int
    image_url: str | None = None
    asset_download_url: str | None = None
    is_active: bool
    owned: bool = False


class ShopCatalogResponse(BaseModel):
    items: list[ShopItemResponse]


class InventoryEntryResponse(BaseModel):
    item: ShopItemResponse
    purchased_at: datetime


class InventoryResponse(BaseModel):
    items: list[InventoryEntryResponse]
    current_avatar_id: int | None = None
    current_frame_id: int | None = None


class PurchaseRequest(BaseModel):
    expected_price: int = Field(..., ge=0)


class PurchaseResponse(BaseModel):
    item: ShopItemResponse
    purchased_at: datetime
    coins_remaining: int


class EquipRequest(BaseModel):
    item_id: int
    slot: Literal["avatar", "frame"]


class EquipResponse(BaseModel):
    profile: ProfileResponse
