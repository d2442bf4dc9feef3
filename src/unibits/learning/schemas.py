"""Pydantic schemas for learning endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from unibits.progression.schemas import AchievementResponse, ProfileResponse


# --- Modules & lessons ---


class ModuleSummary(BaseModel):
    id: int
    title: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    order_index: int
    is_locked: bool
    lesson_count: int
    completed_lessons: int
    all_lessons_completed: bool
    boss_defeated: bool


class ModuleListResponse(BaseModel):
    modules: list[ModuleSummary]


class LessonSummary(BaseModel):
    id: int
    title: str
    order_index: int
    xp_reward: int
    is_completed: bool
    is_unlocked: bool


class ModuleDetailResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    order_index: int
    is_locked: bool
    question_count: int
    completed_lessons: int
    lessons: list[LessonSummary]


class LessonResponse(BaseModel):
    id: int
    module_id: int
    title: str
    order_index: int
    content_text: str | None = None
    video_url: str | None = None
    xp_reward: int
    is_completed: bool


class CompleteLessonRequest(BaseModel):
    quiz_score: int | None = Field(None, ge=0)


class CompleteLessonResponse(BaseModel):
    already_completed: bool
    xp_awarded: int
    coins_awarded: int
    achievements_earned: list[AchievementResponse] = []
    profile: ProfileResponse | None = None


# --- Boss fight ---


class BossQuestionResponse(BaseModel):
    id: int
    question: str
    options: list[str]
    correct_answer: int
    explanation: str | None = None


class BossQuizResponse(BaseModel):
    module_id: int
    total_questions: int
    passing_score: int
    lives: int
    questions: list[BossQuestionResponse]


class BossSubmission(BaseModel):
    answers: list[int] = Field(..., min_length=1)


class BossResultResponse(BaseModel):
    passed: bool
    score: int
    total_questions: int
    passing_score: int
    lives_remaining: int
    is_perfect: bool
    first_victory: bool
    xp_awarded: int
    coins_awarded: int
    unlocked_module_id: int | None = None
    next_module_id: int | None = None
    achievements_earned: list[AchievementResponse] = []
