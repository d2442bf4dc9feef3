"""Lesson progress tracking and lesson unlock rules."""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.db.models import Lesson, UserProgress

logger = logging.getLogger(__name__)


async def get_progress(db: AsyncSession, user_id: str, lesson_id: int) -> UserProgress | None:
    result = await db.execute(
        select(UserProgress).where(
            UserProgress.user_id == user_id,
            UserProgress.lesson_id == lesson_id,
        )
    )
    return result.scalar_one_or_none()


async def complete_lesson(
    db: AsyncSession,
    user_id: str,
    lesson_id: int,
    quiz_score: int | None = None,
) -> tuple[UserProgress, bool]:
    """Upsert the (user, lesson) progress record as completed.

    Returns (record, newly_completed). newly_completed is False when the lesson was
    already completed; rewards are the caller's business.
    """
    now = datetime.now(timezone.utc)
    record = await get_progress(db, user_id, lesson_id)
    if record is None:
        record = UserProgress(
            user_id=user_id,
            lesson_id=lesson_id,
            is_completed=True,
            completed_at=now,
            quiz_score=quiz_score,
        )
        try:
            async with db.begin_nested():
                db.add(record)
                await db.flush()
            return record, True
        except IntegrityError:
            # Inserted concurrently, fall through to the update path
            record = await get_progress(db, user_id, lesson_id)
            if record is None:
                raise

    was_completed = record.is_completed
    record.is_completed = True
    record.completed_at = now
    record.quiz_score = quiz_score
    await db.flush()
    return record, not was_completed


def is_lesson_unlocked(
    lesson: Lesson,
    module_lessons: Sequence[Lesson],
    completed_lesson_ids: Collection[int],
    module_unlocked: bool = True,
) -> bool:
    """Whether a lesson is accessible.

    Completed lessons stay accessible regardless of ordering. Otherwise the module
    must be unlocked, and any lesson after the first needs its predecessor completed.
    """
    if lesson.id in completed_lesson_ids:
        return True
    if not module_unlocked:
        return False
    ordered = sorted(module_lessons, key=lambda item: item.order_index)
    position = next((i for i, item in enumerate(ordered) if item.id == lesson.id), None)
    if position is None:
        msg = f"Lesson {lesson.id} is not part of the given module lessons"
        raise ValueError(msg)
    if position == 0:
        return True
    return ordered[position - 1].id in completed_lesson_ids


async def get_module_lessons(db: AsyncSession, module_id: int) -> list[Lesson]:
    result = await db.execute(
        select(Lesson).where(Lesson.module_id == module_id).order_by(Lesson.order_index)
    )
    return list(result.scalars().all())


async def completed_lesson_ids(db: AsyncSession, user_id: str, module_id: int | None = None) -> set[int]:
    """Ids of lessons the user has completed, optionally limited to one module."""
    stmt = select(UserProgress.lesson_id).where(
        UserProgress.user_id == user_id,
        UserProgress.is_completed.is_(True),
    )
    if module_id is not None:
        stmt = stmt.join(Lesson, Lesson.id == UserProgress.lesson_id).where(Lesson.module_id == module_id)
    result = await db.execute(stmt)
    return set(result.scalars().all())


async def module_completion_count(db: AsyncSession, user_id: str, module_id: int) -> int:
    """Number of lessons in the module the user has completed."""
    result = await db.execute(
        select(func.count(UserProgress.id))
        .join(Lesson, Lesson.id == UserProgress.lesson_id)
        .where(
            UserProgress.user_id == user_id,
            UserProgress.is_completed.is_(True),
            Lesson.module_id == module_id,
        )
    )
    return result.scalar() or 0


async def all_lessons_completed(db: AsyncSession, user_id: str, module_id: int) -> bool:
    """True when the module has lessons and every one of them is completed."""
    total_result = await db.execute(select(func.count(Lesson.id)).where(Lesson.module_id == module_id))
    total = total_result.scalar() or 0
    if total == 0:
        return False
    return await module_completion_count(db, user_id, module_id) == total


async def total_completed_lessons(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count(UserProgress.id)).where(
            UserProgress.user_id == user_id,
            UserProgress.is_completed.is_(True),
        )
    )
    return result.scalar() or 0
