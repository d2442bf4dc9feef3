"""Pydantic response models for progression endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


# --- Profile & levels ---


class ProfileResponse(BaseModel):
    user_id: str
    display_name: str
    avatar_url: str | None = None
    xp_total: int
    level: int
    level_floor_xp: int
    next_level_xp: int
    progress_percent: float
    coins: int
    current_streak: int
    current_avatar_id: int | None = None
    current_frame_id: int | None = None
    featured_achievements: list[int] = []
    role: str = "student"


class LevelInfoResponse(BaseModel):
    level: int
    xp_total: int
    level_floor_xp: int
    next_level_xp: int
    xp_into_level: int
    xp_for_level: int
    progress_percent: float


# --- Reward ledger ---


class RewardHistoryEntry(BaseModel):
    xp_amount: int
    coin_amount: int
    source: str
    source_id: str | None = None
    description: str | None = None
    created_at: datetime | None = None


class RewardHistoryResponse(BaseModel):
    entries: list[RewardHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Achievements ---


class AchievementResponse(BaseModel):
    id: int
    slug: str
    name: str
    description: str | None = None
    icon: str
    condition_type: str
    condition_value: str | None = None
    xp_reward: int
    coin_reward: int


class AllAchievementsResponse(BaseModel):
    achievements: list[AchievementResponse]


class EarnedAchievementResponse(BaseModel):
    achievement: AchievementResponse
    earned_at: datetime


class UserAchievementsResponse(BaseModel):
    earned: list[EarnedAchievementResponse]
    total_available: int
    total_earned: int


class FeaturedAchievementsRequest(BaseModel):
    achievement_ids: list[int] = Field(default_factory=list)
