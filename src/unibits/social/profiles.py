"""Public profiles, user search and featured achievements."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.db.models import Achievement, Profile, UserAchievement
from unibits.errors import InvalidStateError, NotFoundError, UnauthorizedError
from unibits.progression.leveling import level_for_xp

logger = logging.getLogger(__name__)

FEATURED_ACHIEVEMENTS_CAP = 3
SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 10


async def search_profiles(db: AsyncSession, query: str, exclude_user_id: str | None = None) -> list[Profile]:
    """Case-insensitive substring match on display name. Short queries return nothing."""
    query = query.strip()
    if len(query) < SEARCH_MIN_LENGTH:
        return []
    # Escape LIKE wildcards so user input matches literally
    escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    stmt = (
        select(Profile)
        .where(func.lower(Profile.display_name).like(f"%{escaped}%", escape="\\"))
        .order_by(Profile.display_name, Profile.user_id)
        .limit(SEARCH_LIMIT)
    )
    if exclude_user_id is not None:
        stmt = stmt.where(Profile.user_id != exclude_user_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def public_profile(db: AsyncSession, user_id: str) -> dict:
    """Public view of a user: identity, level, xp and featured achievements."""
    result = await db.execute(select(Profile).where(Profile.user_id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("User not found", user_id=user_id)

    featured_ids = list(profile.featured_achievements or [])
    featured: list[Achievement] = []
    if featured_ids:
        rows = await db.execute(select(Achievement).where(Achievement.id.in_(featured_ids)))
        by_id = {a.id: a for a in rows.scalars().all()}
        featured = [by_id[i] for i in featured_ids if i in by_id]

    earned_count = (await db.execute(
        select(func.count(UserAchievement.id)).where(UserAchievement.user_id == user_id)
    )).scalar() or 0

    return {
        "user_id": profile.user_id,
        "display_name": profile.display_name,
        "avatar_url": profile.avatar_url,
        "current_avatar_id": profile.current_avatar_id,
        "current_frame_id": profile.current_frame_id,
        "xp_total": profile.xp_total,
        "level": level_for_xp(profile.xp_total),
        "achievements_earned": earned_count,
        "featured_achievements": [
            {"id": a.id, "slug": a.slug, "name": a.name, "icon": a.icon} for a in featured
        ],
    }


async def set_featured_achievements(db: AsyncSession, user_id: str, achievement_ids: list[int]) -> Profile:
    """Replace the featured list. At most 3 distinct ids, each earned by the user; order kept."""
    if len(achievement_ids) > FEATURED_ACHIEVEMENTS_CAP:
        raise InvalidStateError(
            f"At most {FEATURED_ACHIEVEMENTS_CAP} achievements can be featured",
            count=len(achievement_ids),
        )
    if len(set(achievement_ids)) != len(achievement_ids):
        raise InvalidStateError("Featured achievements must not repeat")

    result = await db.execute(select(Profile).where(Profile.user_id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Profile not found", user_id=user_id)

    if achievement_ids:
        earned = await db.execute(
            select(UserAchievement.achievement_id).where(
                UserAchievement.user_id == user_id,
                UserAchievement.achievement_id.in_(achievement_ids),
            )
        )
        missing = set(achievement_ids) - set(earned.scalars().all())
        if missing:
            raise UnauthorizedError(
                "Only earned achievements can be featured",
                achievement_ids=sorted(missing),
            )

    profile.featured_achievements = list(achievement_ids)
    profile.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Featured achievements for %s set to %s", user_id, achievement_ids)
    return profile
