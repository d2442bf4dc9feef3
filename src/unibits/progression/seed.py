"""Default achievement catalogue, seeded idempotently by slug."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.db.models import Achievement

logger = logging.getLogger(__name__)

ACHIEVEMENT_SEED_DATA: list[dict] = [
    {
        "slug": "first_lesson",
        "name": "First Steps",
        "description": "Complete your first lesson",
        "icon": "footprints",
        "condition_type": "lesson_complete",
        "condition_value": "1",
        "xp_reward": 50,
        "coin_reward": 10,
    },
    {
        "slug": "lessons_5",
        "name": "Bookworm",
        "description": "Complete 5 lessons",
        "icon": "book-open",
        "condition_type": "lesson_complete",
        "condition_value": "5",
        "xp_reward": 100,
        "coin_reward": 25,
    },
    {
        "slug": "lessons_10",
        "name": "Scholar",
        "description": "Complete 10 lessons",
        "icon": "graduation-cap",
        "condition_type": "lesson_complete",
        "condition_value": "10",
        "xp_reward": 200,
        "coin_reward": 50,
    },
    {
        "slug": "first_boss",
        "name": "Boss Slayer",
        "description": "Defeat your first boss",
        "icon": "sword",
        "condition_type": "boss_defeat",
        "condition_value": "1",
        "xp_reward": 150,
        "coin_reward": 30,
    },
    {
        "slug": "perfect_run",
        "name": "Flawless",
        "description": "Defeat a boss without a single mistake",
        "icon": "star",
        "condition_type": "perfect_score",
        "condition_value": "1",
        "xp_reward": 200,
        "coin_reward": 50,
    },
    {
        "slug": "modules_3",
        "name": "Explorer",
        "description": "Complete 3 modules",
        "icon": "map",
        "condition_type": "module_complete",
        "condition_value": "3",
        "xp_reward": 300,
        "coin_reward": 75,
    },
]


async def seed_achievements(db: AsyncSession) -> int:
    """Insert catalogue entries whose slug is missing. Returns the number inserted.

    Existing rows are left untouched so admin edits survive restarts.
    """
    result = await db.execute(select(Achievement.slug))
    existing = set(result.scalars().all())

    seeded = 0
    for data in ACHIEVEMENT_SEED_DATA:
        if data["slug"] in existing:
            continue
        db.add(Achievement(**data))
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievement definitions", seeded)
    return seeded
