"""Pydantic schemas for social endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


# --- Profiles ---


class UserSearchResult(BaseModel):
    user_id: str
    display_name: str
    avatar_url: str | None = None
    level: int


class UserSearchResponse(BaseModel):
    results: list[UserSearchResult]


class FeaturedAchievement(BaseModel):
    id: int
    slug: str
    name: str
    icon: str


class PublicProfileResponse(BaseModel):
    user_id: str
    display_name: str
    avatar_url: str | None = None
    current_avatar_id: int | None = None
    current_frame_id: int | None = None
    xp_total: int
    level: int
    achievements_earned: int
    featured_achievements: list[FeaturedAchievement] = []


# --- Friendships ---


class FriendRequestCreate(BaseModel):
    addressee_id: str = Field(..., min_length=1, max_length=64)


class FriendshipResponse(BaseModel):
    id: int
    requester_id: str
    addressee_id: str
    status: str
    created_at: datetime
    updated_at: datetime


class FriendEntry(BaseModel):
    friendship_id: int
    user_id: str
    display_name: str
    avatar_url: str | None = None
    level: int
    status: str
    since: datetime


class FriendListResponse(BaseModel):
    friends: list[FriendEntry]
    total: int


class FriendshipStatusResponse(BaseModel):
    status: str
    friendship_id: int | None = None
    direction: str | None = None
