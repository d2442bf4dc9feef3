"""Learning API endpoints — modules, lessons, lesson completion and boss fights."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.auth.dependencies import get_current_profile, get_user_role
from unibits.database import get_session
from unibits.db.models import Profile
from unibits.errors import retry_on_conflict
from unibits.learning.boss_quiz import MAX_LIVES, passing_score
from unibits.learning.schemas import (
    BossQuestionResponse,
    BossQuizResponse,
    BossResultResponse,
    BossSubmission,
    CompleteLessonRequest,
    CompleteLessonResponse,
    LessonResponse,
    ModuleDetailResponse,
    ModuleListResponse,
    ModuleSummary,
)
from unibits.learning.service import LearningService
from unibits.redis_client import get_event_redis

router = APIRouter(prefix="/api/v1", tags=["Learning"])


@router.get("/modules", response_model=ModuleListResponse)
async def list_modules(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """All modules with lock state and the caller's progress."""
    svc = LearningService(db)
    modules = await svc.list_modules(profile.user_id)
    return ModuleListResponse(modules=[ModuleSummary(**m) for m in modules])


@router.get("/modules/{module_id}", response_model=ModuleDetailResponse)
async def get_module(
    module_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Module detail with per-lesson unlocked/completed flags."""
    svc = LearningService(db)
    return ModuleDetailResponse(**await svc.get_module_detail(module_id, profile.user_id))


@router.get("/lessons/{lesson_id}", response_model=LessonResponse)
async def get_lesson(
    lesson_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Lesson content (409 while locked)."""
    svc = LearningService(db)
    return LessonResponse(**await svc.get_lesson(lesson_id, profile.user_id))


@router.post("/lessons/{lesson_id}/complete", response_model=CompleteLessonResponse)
async def complete_lesson(
    lesson_id: int,
    body: CompleteLessonRequest | None = None,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_event_redis),
):
    """Mark a lesson complete; first completion grants XP, coins and achievements."""
    svc = LearningService(db, redis=redis)
    user_id = profile.user_id
    quiz_score = body.quiz_score if body else None

    async def _complete() -> dict:
        result = await svc.complete_lesson_flow(user_id, lesson_id, quiz_score)
        await db.commit()
        return result

    result = await retry_on_conflict(db, _complete)
    if result["profile"] is not None:
        result["profile"]["role"] = await get_user_role(db, user_id)
    return CompleteLessonResponse(**result)


@router.get("/modules/{module_id}/boss", response_model=BossQuizResponse)
async def get_boss_quiz(
    module_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Boss question set (422 when the module has no questions, 409 until every lesson is done)."""
    svc = LearningService(db)
    questions = await svc.get_boss_questions(profile.user_id, module_id)
    return BossQuizResponse(
        module_id=module_id,
        total_questions=len(questions),
        passing_score=passing_score(len(questions)),
        lives=MAX_LIVES,
        questions=[
            BossQuestionResponse(
                id=q.id,
                question=q.question,
                options=list(q.options),
                correct_answer=q.correct_answer,
                explanation=q.explanation,
            )
            for q in questions
        ],
    )


@router.post("/modules/{module_id}/boss", response_model=BossResultResponse)
async def submit_boss_fight(
    module_id: int,
    body: BossSubmission,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_event_redis),
):
    """Submit the ordered answers of a boss fight; the server replays and settles it."""
    svc = LearningService(db, redis=redis)
    user_id = profile.user_id

    async def _settle() -> dict:
        outcome = await svc.settle_boss_fight(user_id, module_id, body.answers)
        await db.commit()
        return outcome

    return BossResultResponse(**await retry_on_conflict(db, _settle))
