"""Pydantic schemas for admin endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ModuleCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    icon: str | None = Field(None, max_length=64)
    color: str | None = Field(None, max_length=32)


class ModuleResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    order_index: int
    is_locked: bool


class LessonCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content_text: str | None = None
    video_url: str | None = Field(None, max_length=512)
    xp_reward: int = 100


class LessonAdminResponse(BaseModel):
    id: int
    module_id: int
    title: str
    order_index: int
    xp_reward: int


class QuestionCreate(BaseModel):
    question: str = Field(..., min_length=1)
    options: list[str]
    correct_answer: int
    explanation: str | None = None


class QuestionResponse(BaseModel):
    id: int
    module_id: int
    question: str
    options: list[str]
    correct_answer: int
    explanation: str | None = None


class ShopItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    type: str
    price: int
    description: str | None = None
    image_url: str | None = Field(None, max_length=512)
    asset_download_url: str | None = Field(None, max_length=512)
    is_active: bool = True


class ShopItemUpdate(BaseModel):
    is_active: bool | None = None
    price: int | None = None


class AchievementCreate(BaseModel):
    slug: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=128)
    condition_type: str
    condition_value: str | None = None
    description: str | None = None
    icon: str = "trophy"
    xp_reward: int = 0
    coin_reward: int = 0


class AwardAchievementRequest(BaseModel):
    user_id: str
    achievement_id: int


class AdminUserEntry(BaseModel):
    user_id: str
    display_name: str
    role: str
    xp_total: int
    level: int
    coins: int
    created_at: datetime | None = None


class AdminUserListResponse(BaseModel):
    users: list[AdminUserEntry]


class RoleUpdate(BaseModel):
    role: Literal["admin", "moderator", "student"]


class RoleResponse(BaseModel):
    user_id: str
    role: str
