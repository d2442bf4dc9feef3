"""Progression API endpoints — profile, levels, reward history and achievements."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.auth.dependencies import get_current_profile, get_user_role
from unibits.database import get_session
from unibits.db.models import Achievement, Profile
from unibits.progression.achievements import (
    achievement_to_dict,
    list_achievements,
    list_user_achievements,
)
from unibits.progression.ledger import list_ledger, profile_snapshot
from unibits.progression.leveling import compute_level
from unibits.progression.schemas import (
    AchievementResponse,
    AllAchievementsResponse,
    EarnedAchievementResponse,
    FeaturedAchievementsRequest,
    LevelInfoResponse,
    ProfileResponse,
    RewardHistoryEntry,
    RewardHistoryResponse,
    UserAchievementsResponse,
)
from unibits.social.profiles import set_featured_achievements

router = APIRouter(prefix="/api/v1", tags=["Progression"])


def _achievement(a: Achievement) -> AchievementResponse:
    return AchievementResponse(**achievement_to_dict(a))


@router.get("/levels/{xp}", response_model=LevelInfoResponse)
async def get_level_info(xp: int):
    """Level info for an XP amount. Public."""
    if xp < 0:
        raise HTTPException(status_code=422, detail="xp must be non-negative")
    return LevelInfoResponse(**compute_level(xp))


@router.get("/achievements", response_model=AllAchievementsResponse)
async def get_achievements(db: AsyncSession = Depends(get_session)):
    """Achievement catalogue. Public."""
    achievements = await list_achievements(db)
    return AllAchievementsResponse(achievements=[_achievement(a) for a in achievements])


@router.get("/me", response_model=ProfileResponse)
async def get_me(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Current user's profile snapshot."""
    role = await get_user_role(db, profile.user_id)
    return ProfileResponse(**profile_snapshot(profile), role=role)


@router.get("/me/rewards", response_model=RewardHistoryResponse)
async def get_reward_history(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Paginated XP/coin grant history."""
    entries, total = await list_ledger(db, profile.user_id, page, per_page)
    return RewardHistoryResponse(
        entries=[
            RewardHistoryEntry(
                xp_amount=e.xp_amount,
                coin_amount=e.coin_amount,
                source=e.source,
                source_id=e.source_id,
                description=e.description,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/me/achievements", response_model=UserAchievementsResponse)
async def get_my_achievements(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Achievements earned by the current user."""
    earned = await list_user_achievements(db, profile.user_id)
    total_available = len(await list_achievements(db))
    return UserAchievementsResponse(
        earned=[
            EarnedAchievementResponse(achievement=_achievement(ua.achievement), earned_at=ua.earned_at)
            for ua in earned
        ],
        total_available=total_available,
        total_earned=len(earned),
    )


@router.put("/me/featured-achievements", response_model=ProfileResponse)
async def put_featured_achievements(
    body: FeaturedAchievementsRequest,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Replace the achievements shown on the public profile."""
    updated = await set_featured_achievements(db, profile.user_id, body.achievement_ids)
    await db.commit()
    role = await get_user_role(db, profile.user_id)
    return ProfileResponse(**profile_snapshot(updated), role=role)
