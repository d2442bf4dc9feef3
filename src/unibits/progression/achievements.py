"""Achievement evaluation and awarding.

Achievements are keyed by a closed set of condition types. ``evaluate_and_grant``
is safe to call redundantly: the earned-check runs right before each insert and
the (user_id, achievement_id) unique constraint rejects concurrent duplicates.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.db.models import Achievement, UserAchievement
from unibits.errors import AlreadyExistsError, ConfigurationError, InvalidStateError, NotFoundError
from unibits.events import ACHIEVEMENT_EARNED, publish_event
from unibits.progression.ledger import get_profile, grant_rewards

logger = logging.getLogger(__name__)


class ConditionType(str, Enum):
    LESSON_COMPLETE = "lesson_complete"
    BOSS_DEFEAT = "boss_defeat"
    PERFECT_SCORE = "perfect_score"
    MODULE_COMPLETE = "module_complete"
    CUSTOM = "custom"


def parse_threshold(condition_value: str | None) -> int:
    """Parse a stored threshold. Missing or unparseable values count as 0."""
    if condition_value is None:
        return 0
    try:
        return int(str(condition_value).strip())
    except ValueError:
        return 0


def validate_condition(condition_type: str, condition_value: str | int | None) -> tuple[ConditionType, str | None]:
    """Validate an achievement condition at authoring time.

    Returns the normalised (type, value). Non-custom conditions need an integer
    threshold >= 0; custom achievements may leave it empty.
    """
    try:
        ctype = ConditionType(condition_type)
    except ValueError:
        allowed = ", ".join(c.value for c in ConditionType)
        raise ConfigurationError(
            f"Unknown condition type '{condition_type}' (expected one of: {allowed})",
            condition_type=condition_type,
        ) from None

    if condition_value is None or str(condition_value).strip() == "":
        if ctype is ConditionType.CUSTOM:
            return ctype, None
        raise ConfigurationError(f"Condition '{ctype.value}' requires a threshold")

    try:
        threshold = int(str(condition_value).strip())
    except ValueError:
        raise ConfigurationError(
            f"Threshold must be an integer, got '{condition_value}'",
            condition_value=str(condition_value),
        ) from None
    if threshold < 0:
        raise ConfigurationError("Threshold must be >= 0", condition_value=str(condition_value))
    return ctype, str(threshold)


async def has_achievement(db: AsyncSession, user_id: str, achievement_id: int) -> bool:
    result = await db.execute(
        select(UserAchievement.id).where(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_id == achievement_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def _award(
    db: AsyncSession,
    user_id: str,
    achievement: Achievement,
    redis: object | None,
) -> bool:
    """Insert the earned record and credit its rewards. Returns False if already earned."""
    if await has_achievement(db, user_id, achievement.id):
        return False

    try:
        async with db.begin_nested():
            db.add(UserAchievement(
                user_id=user_id,
                achievement_id=achievement.id,
                earned_at=datetime.now(timezone.utc),
            ))
            await db.flush()
            if achievement.xp_reward or achievement.coin_reward:
                await grant_rewards(
                    db,
                    user_id,
                    achievement.xp_reward,
                    achievement.coin_reward,
                    source="achievement",
                    source_id=achievement.slug,
                    description=f'Earned achievement: "{achievement.name}"',
                    idempotency_key=f"achievement:{achievement.id}:{user_id}",
                    redis=redis,
                )
    except IntegrityError:
        # Race: earned concurrently
        return False

    logger.info("Achievement %s earned by %s", achievement.slug, user_id)
    await publish_event(redis, ACHIEVEMENT_EARNED, {
        "user_id": user_id,
        "achievement_id": achievement.id,
        "slug": achievement.slug,
        "name": achievement.name,
        "xp_reward": achievement.xp_reward,
        "coin_reward": achievement.coin_reward,
    })
    return True


async def evaluate_and_grant(
    db: AsyncSession,
    user_id: str,
    condition_type: ConditionType | str,
    observed_value: int,
    redis: object | None = None,
) -> list[Achievement]:
    """Award every not-yet-earned achievement of ``condition_type`` whose threshold is met.

    Returns the newly earned achievements (empty when nothing new qualifies).
    Custom achievements are never evaluated automatically.
    """
    ctype = ConditionType(condition_type)
    if ctype is ConditionType.CUSTOM:
        return []

    result = await db.execute(
        select(Achievement)
        .where(Achievement.condition_type == ctype.value)
        .order_by(Achievement.id)
    )
    earned: list[Achievement] = []
    for achievement in result.scalars().all():
        if observed_value < parse_threshold(achievement.condition_value):
            continue
        if await _award(db, user_id, achievement, redis):
            earned.append(achievement)
    return earned


async def award_achievement(
    db: AsyncSession,
    user_id: str,
    achievement_id: int,
    redis: object | None = None,
) -> Achievement:
    """Manually award a custom achievement (admin action)."""
    achievement = await db.get(Achievement, achievement_id)
    if achievement is None:
        raise NotFoundError("Achievement not found", achievement_id=achievement_id)
    if achievement.condition_type != ConditionType.CUSTOM.value:
        raise InvalidStateError(
            "Only custom achievements can be awarded manually",
            achievement_id=achievement_id,
        )
    if await get_profile(db, user_id) is None:
        raise NotFoundError("Profile not found", user_id=user_id)
    if not await _award(db, user_id, achievement, redis):
        raise AlreadyExistsError("Achievement already earned", achievement_id=achievement_id, user_id=user_id)
    return achievement


async def list_achievements(db: AsyncSession) -> list[Achievement]:
    result = await db.execute(select(Achievement).order_by(Achievement.condition_type, Achievement.id))
    return list(result.scalars().all())


async def list_user_achievements(db: AsyncSession, user_id: str) -> list[UserAchievement]:
    """Earned achievements for a user, most recent first."""
    result = await db.execute(
        select(UserAchievement)
        .where(UserAchievement.user_id == user_id)
        .order_by(UserAchievement.earned_at.desc(), UserAchievement.id.desc())
    )
    return list(result.scalars().all())


def achievement_to_dict(achievement: Achievement) -> dict:
    return {
        "id": achievement.id,
        "slug": achievement.slug,
        "name": achievement.name,
        "description": achievement.description,
        "icon": achievement.icon,
        "condition_type": achievement.condition_type,
        "condition_value": achievement.condition_value,
        "xp_reward": achievement.xp_reward,
        "coin_reward": achievement.coin_reward,
    }
