"""Reward ledger: XP/coin grants with level recomputation and idempotency.

A grant locks the profile row (SELECT ... FOR UPDATE), appends a ledger entry and
rewrites xp_total, level and coins in one savepoint. Grants for the same user
serialise on the row lock; different users never contend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.db.models import Profile, RewardLedgerEntry
from unibits.errors import NotFoundError, conflict_guard
from unibits.events import LEVEL_UP, publish_event
from unibits.progression.leveling import level_floor, level_for_xp, progress_fraction, xp_threshold

logger = logging.getLogger(__name__)


@dataclass
class RewardGrant:
    """Outcome of a grant_rewards call."""

    granted: bool
    xp_awarded: int
    coins_awarded: int
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


async def get_profile(db: AsyncSession, user_id: str) -> Profile | None:
    result = await db.execute(select(Profile).where(Profile.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_profile(
    db: AsyncSession,
    user_id: str,
    display_name: str | None = None,
) -> Profile:
    """Get the profile for a user, creating a fresh one (xp 0, level 1, coins 0) on first sign-in."""
    profile = await get_profile(db, user_id)
    if profile is not None:
        return profile

    now = datetime.now(timezone.utc)
    profile = Profile(
        user_id=user_id,
        display_name=(display_name or f"user-{user_id[:8]}")[:64],
        xp_total=0,
        level=1,
        coins=0,
        current_streak=0,
        featured_achievements=[],
        created_at=now,
        updated_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(profile)
    except IntegrityError:
        # Created concurrently by another request for the same user
        existing = await get_profile(db, user_id)
        if existing is None:
            raise
        return existing
    logger.info("Created profile for %s", user_id)
    return profile


async def lock_profile(db: AsyncSession, user_id: str) -> Profile:
    """Load the profile row FOR UPDATE, refreshing any stale copy in the session."""
    result = await db.execute(
        select(Profile)
        .where(Profile.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Profile not found", user_id=user_id)
    return profile


async def idempotency_key_used(db: AsyncSession, idempotency_key: str) -> bool:
    result = await db.execute(
        select(RewardLedgerEntry.id).where(RewardLedgerEntry.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none() is not None


async def grant_rewards(
    db: AsyncSession,
    user_id: str,
    xp_delta: int,
    coin_delta: int,
    *,
    source: str,
    source_id: str | None = None,
    description: str | None = None,
    idempotency_key: str | None = None,
    redis: object | None = None,
) -> RewardGrant:
    """Grant XP and coins to a user.

    Returns a RewardGrant with granted=False when ``idempotency_key`` was already used.
    Raises NotFoundError if the profile does not exist.
    """
    if xp_delta < 0 or coin_delta < 0:
        msg = "Reward deltas must be non-negative"
        raise ValueError(msg)

    async with conflict_guard():
        profile = await lock_profile(db, user_id)
        old_level = level_for_xp(profile.xp_total)

        if idempotency_key is not None and await idempotency_key_used(db, idempotency_key):
            return RewardGrant(False, 0, 0, old_level, old_level)

        now = datetime.now(timezone.utc)
        new_xp = profile.xp_total + xp_delta
        new_level = level_for_xp(new_xp)
        try:
            async with db.begin_nested():
                db.add(RewardLedgerEntry(
                    user_id=user_id,
                    xp_amount=xp_delta,
                    coin_amount=coin_delta,
                    source=source,
                    source_id=source_id,
                    description=description,
                    idempotency_key=idempotency_key,
                    created_at=now,
                ))
                profile.xp_total = new_xp
                profile.level = new_level
                profile.coins = profile.coins + coin_delta
                profile.updated_at = now
        except IntegrityError:
            # Duplicate idempotency key inserted by a concurrent grant
            await db.refresh(profile)
            return RewardGrant(False, 0, 0, old_level, old_level)

    logger.info(
        "Granted %d XP / %d coins to %s (source=%s, level %d -> %d)",
        xp_delta, coin_delta, user_id, source, old_level, new_level,
    )

    grant = RewardGrant(True, xp_delta, coin_delta, old_level, new_level)
    if grant.leveled_up:
        await publish_event(redis, LEVEL_UP, {
            "user_id": user_id,
            "old_level": old_level,
            "new_level": new_level,
            "xp_total": new_xp,
        })
    return grant


async def list_ledger(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[RewardLedgerEntry], int]:
    """Paginated reward history, newest first."""
    total_result = await db.execute(
        select(func.count(RewardLedgerEntry.id)).where(RewardLedgerEntry.user_id == user_id)
    )
    total = total_result.scalar() or 0

    result = await db.execute(
        select(RewardLedgerEntry)
        .where(RewardLedgerEntry.user_id == user_id)
        .order_by(RewardLedgerEntry.created_at.desc(), RewardLedgerEntry.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), total


def profile_snapshot(profile: Profile) -> dict[str, Any]:
    """Raw numeric view of a profile. Level is re-derived from xp_total."""
    level = level_for_xp(profile.xp_total)
    return {
        "user_id": profile.user_id,
        "display_name": profile.display_name,
        "avatar_url": profile.avatar_url,
        "xp_total": profile.xp_total,
        "level": level,
        "level_floor_xp": level_floor(level),
        "next_level_xp": xp_threshold(level),
        "progress_percent": progress_fraction(profile.xp_total, level),
        "coins": profile.coins,
        "current_streak": profile.current_streak,
        "current_avatar_id": profile.current_avatar_id,
        "current_frame_id": profile.current_frame_id,
        "featured_achievements": list(profile.featured_achievements or []),
    }
