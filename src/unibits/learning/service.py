"""Learning service — modules, lessons, lesson completion and boss fights."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.db.models import BossVictory, Lesson, Module, QuizQuestion
from unibits.errors import ConfigurationError, InvalidStateError, NotFoundError
from unibits.events import MODULE_UNLOCKED, publish_event
from unibits.learning.boss_quiz import BOSS_XP_REWARD, BossQuestion, replay
from unibits.learning.progress import (
    all_lessons_completed,
    complete_lesson,
    completed_lesson_ids,
    get_module_lessons,
    is_lesson_unlocked,
    module_completion_count,
    total_completed_lessons,
)
from unibits.progression.achievements import ConditionType, achievement_to_dict, evaluate_and_grant
from unibits.progression.ledger import get_profile, grant_rewards, profile_snapshot

logger = logging.getLogger(__name__)

LESSON_COIN_REWARD = 10


class LearningService:
    """Content delivery, lesson completion and boss-fight settlement for one request."""

    def __init__(
        self,
        db: AsyncSession,
        redis: object | None = None,
    ) -> None:
        self.db = db
        self.redis = redis

    # --- Content ---

    async def get_module(self, module_id: int) -> Module:
        module = await self.db.get(Module, module_id)
        if module is None:
            raise NotFoundError("Module not found", module_id=module_id)
        return module

    async def get_lesson_row(self, lesson_id: int) -> Lesson:
        lesson = await self.db.get(Lesson, lesson_id)
        if lesson is None:
            raise NotFoundError("Lesson not found", lesson_id=lesson_id)
        return lesson

    async def list_modules(self, user_id: str) -> list[dict]:
        """All modules in order, with lock state and the user's completion counts."""
        modules = (await self.db.execute(select(Module).order_by(Module.order_index))).scalars().all()

        lesson_counts = dict(
            (await self.db.execute(
                select(Lesson.module_id, func.count(Lesson.id)).group_by(Lesson.module_id)
            )).all()
        )
        defeated = set(
            (await self.db.execute(
                select(BossVictory.module_id).where(BossVictory.user_id == user_id)
            )).scalars().all()
        )

        result = []
        for module in modules:
            total = lesson_counts.get(module.id, 0)
            done = await module_completion_count(self.db, user_id, module.id) if total else 0
            result.append({
                "id": module.id,
                "title": module.title,
                "description": module.description,
                "icon": module.icon,
                "color": module.color,
                "order_index": module.order_index,
                "is_locked": module.is_locked,
                "lesson_count": total,
                "completed_lessons": done,
                "all_lessons_completed": await all_lessons_completed(self.db, user_id, module.id),
                "boss_defeated": module.id in defeated,
            })
        return result

    async def get_module_detail(self, module_id: int, user_id: str) -> dict:
        """Module with its lessons flagged unlocked/completed for the user."""
        module = await self.get_module(module_id)
        lessons = await get_module_lessons(self.db, module_id)
        done = await completed_lesson_ids(self.db, user_id, module_id)
        question_count = (await self.db.execute(
            select(func.count(QuizQuestion.id)).where(QuizQuestion.module_id == module_id)
        )).scalar() or 0

        return {
            "id": module.id,
            "title": module.title,
            "description": module.description,
            "icon": module.icon,
            "color": module.color,
            "order_index": module.order_index,
            "is_locked": module.is_locked,
            "question_count": question_count,
            "completed_lessons": len(done),
            "lessons": [
                {
                    "id": lesson.id,
                    "title": lesson.title,
                    "order_index": lesson.order_index,
                    "xp_reward": lesson.xp_reward,
                    "is_completed": lesson.id in done,
                    "is_unlocked": is_lesson_unlocked(lesson, lessons, done, not module.is_locked),
                }
                for lesson in lessons
            ],
        }

    async def get_lesson(self, lesson_id: int, user_id: str) -> dict:
        """Lesson content. Locked lessons are refused."""
        lesson = await self.get_lesson_row(lesson_id)
        module = await self.get_module(lesson.module_id)
        lessons = await get_module_lessons(self.db, module.id)
        done = await completed_lesson_ids(self.db, user_id, module.id)
        if not is_lesson_unlocked(lesson, lessons, done, not module.is_locked):
            raise InvalidStateError("Lesson is locked", lesson_id=lesson_id)
        return {
            "id": lesson.id,
            "module_id": lesson.module_id,
            "title": lesson.title,
            "order_index": lesson.order_index,
            "content_text": lesson.content_text,
            "video_url": lesson.video_url,
            "xp_reward": lesson.xp_reward,
            "is_completed": lesson.id in done,
        }

    # --- Lesson completion ---

    async def complete_lesson_flow(
        self,
        user_id: str,
        lesson_id: int,
        quiz_score: int | None = None,
    ) -> dict:
        """Mark a lesson complete. Rewards and achievements only on the first completion."""
        lesson = await self.get_lesson_row(lesson_id)
        module = await self.get_module(lesson.module_id)
        lessons = await get_module_lessons(self.db, module.id)
        done = await completed_lesson_ids(self.db, user_id, module.id)
        if not is_lesson_unlocked(lesson, lessons, done, not module.is_locked):
            raise InvalidStateError("Lesson is locked", lesson_id=lesson_id)

        xp_awarded = 0
        coins_awarded = 0
        earned = []
        async with self.db.begin_nested():
            _, newly_completed = await complete_lesson(self.db, user_id, lesson_id, quiz_score)
            if newly_completed:
                grant = await grant_rewards(
                    self.db,
                    user_id,
                    lesson.xp_reward,
                    LESSON_COIN_REWARD,
                    source="lesson",
                    source_id=str(lesson_id),
                    description=f"Completed lesson: {lesson.title}",
                    idempotency_key=f"lesson:{lesson_id}:{user_id}",
                    redis=self.redis,
                )
                xp_awarded = grant.xp_awarded
                coins_awarded = grant.coins_awarded
                total = await total_completed_lessons(self.db, user_id)
                earned = await evaluate_and_grant(
                    self.db, user_id, ConditionType.LESSON_COMPLETE, total, redis=self.redis
                )

        if newly_completed:
            logger.info("Lesson %d completed by %s", lesson_id, user_id)

        profile = await get_profile(self.db, user_id)
        return {
            "already_completed": not newly_completed,
            "xp_awarded": xp_awarded,
            "coins_awarded": coins_awarded,
            "achievements_earned": [achievement_to_dict(a) for a in earned],
            "profile": profile_snapshot(profile) if profile else None,
        }

    # --- Boss fight ---

    async def _load_questions(self, module_id: int) -> list[QuizQuestion]:
        result = await self.db.execute(
            select(QuizQuestion)
            .where(QuizQuestion.module_id == module_id)
            .order_by(QuizQuestion.created_at, QuizQuestion.id)
        )
        return list(result.scalars().all())

    async def _open_boss_fight(self, user_id: str, module_id: int) -> tuple[Module, list[QuizQuestion]]:
        """Module and question set, once the module is unlocked and all its lessons are done."""
        module = await self.get_module(module_id)
        if module.is_locked:
            raise InvalidStateError("Module is locked", module_id=module_id)
        questions = await self._load_questions(module_id)
        if not questions:
            raise ConfigurationError("Boss quiz has no questions configured", module_id=module_id)
        if not await all_lessons_completed(self.db, user_id, module_id):
            raise InvalidStateError("Complete every lesson before the boss fight", module_id=module_id)
        return module, questions

    async def get_boss_questions(self, user_id: str, module_id: int) -> list[QuizQuestion]:
        """Question set for a module's boss fight."""
        _, questions = await self._open_boss_fight(user_id, module_id)
        return questions

    async def settle_boss_fight(self, user_id: str, module_id: int, answers: Sequence[int]) -> dict:
        """Replay a submitted answer sequence and apply the outcome.

        A pass records the victory, grants the boss rewards once per (user, module),
        unlocks the next module and evaluates boss/perfect/module achievements, all
        in one savepoint.
        """
        module, questions = await self._open_boss_fight(user_id, module_id)
        state = replay([BossQuestion(q.id, q.correct_answer) for q in questions], answers)

        outcome: dict = {
            "passed": state.passed,
            "score": state.score,
            "total_questions": state.total_questions,
            "passing_score": state.passing_score,
            "lives_remaining": state.lives,
            "is_perfect": state.is_perfect,
            "first_victory": False,
            "xp_awarded": 0,
            "coins_awarded": 0,
            "unlocked_module_id": None,
            "next_module_id": None,
            "achievements_earned": [],
        }
        if not state.passed:
            logger.info("Boss %d failed by %s (%d/%d)", module_id, user_id, state.score, state.total_questions)
            return outcome

        earned = []
        async with self.db.begin_nested():
            first_victory = await self._record_victory(user_id, module_id, state.score,
                                                       state.total_questions, state.is_perfect)
            if first_victory:
                grant = await grant_rewards(
                    self.db,
                    user_id,
                    BOSS_XP_REWARD,
                    state.coin_reward(),
                    source="boss",
                    source_id=str(module_id),
                    description=f"Defeated the boss of {module.title}",
                    idempotency_key=f"boss:{module_id}:{user_id}",
                    redis=self.redis,
                )
                outcome["xp_awarded"] = grant.xp_awarded
                outcome["coins_awarded"] = grant.coins_awarded

            next_module, newly_unlocked = await self._unlock_next_module(module)

            if first_victory:
                defeated = (await self.db.execute(
                    select(func.count(func.distinct(BossVictory.module_id)))
                    .where(BossVictory.user_id == user_id)
                )).scalar() or 0
                earned += await evaluate_and_grant(
                    self.db, user_id, ConditionType.BOSS_DEFEAT, defeated, redis=self.redis
                )
                if state.is_perfect:
                    perfect = (await self.db.execute(
                        select(func.count(BossVictory.id)).where(
                            BossVictory.user_id == user_id,
                            BossVictory.is_perfect.is_(True),
                        )
                    )).scalar() or 0
                    earned += await evaluate_and_grant(
                        self.db, user_id, ConditionType.PERFECT_SCORE, perfect, redis=self.redis
                    )
                earned += await evaluate_and_grant(
                    self.db, user_id, ConditionType.MODULE_COMPLETE, module.order_index + 1, redis=self.redis
                )

        outcome["first_victory"] = first_victory
        outcome["next_module_id"] = next_module.id if next_module else None
        outcome["unlocked_module_id"] = next_module.id if newly_unlocked and next_module else None
        outcome["achievements_earned"] = [achievement_to_dict(a) for a in earned]

        logger.info(
            "Boss %d defeated by %s (%d/%d, perfect=%s, first=%s)",
            module_id, user_id, state.score, state.total_questions, state.is_perfect, first_victory,
        )
        if newly_unlocked and next_module is not None:
            await publish_event(self.redis, MODULE_UNLOCKED, {
                "user_id": user_id,
                "module_id": next_module.id,
                "defeated_module_id": module_id,
            })
        return outcome

    async def _record_victory(
        self,
        user_id: str,
        module_id: int,
        score: int,
        total_questions: int,
        is_perfect: bool,
    ) -> bool:
        """Insert the BossVictory row. Returns False if the boss was already beaten."""
        existing = await self.db.execute(
            select(BossVictory.id).where(
                BossVictory.user_id == user_id,
                BossVictory.module_id == module_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return False
        try:
            async with self.db.begin_nested():
                self.db.add(BossVictory(
                    user_id=user_id,
                    module_id=module_id,
                    score=score,
                    total_questions=total_questions,
                    is_perfect=is_perfect,
                    defeated_at=datetime.now(timezone.utc),
                ))
        except IntegrityError:
            return False
        return True

    async def _unlock_next_module(self, module: Module) -> tuple[Module | None, bool]:
        """Unlock the module at order_index + 1. Returns (next_module, newly_unlocked)."""
        result = await self.db.execute(
            select(Module)
            .where(Module.order_index == module.order_index + 1)
            .with_for_update()
        )
        next_module = result.scalar_one_or_none()
        if next_module is None or not next_module.is_locked:
            return next_module, False
        next_module.is_locked = False
        await self.db.flush()
        logger.info("Module %d unlocked", next_module.id)
        return next_module, True
