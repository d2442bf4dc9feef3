"""Integration tests for lesson progress and the lesson-completion flow."""

from __future__ import annotations

import pytest

from unibits.admin.service import create_achievement, list_lessons
from unibits.errors import InvalidStateError, NotFoundError
from unibits.learning.progress import (
    all_lessons_completed,
    complete_lesson,
    completed_lesson_ids,
    get_progress,
    module_completion_count,
    total_completed_lessons,
)
from unibits.learning.service import LESSON_COIN_REWARD, LearningService
from unibits.progression.ledger import list_ledger


class TestCompleteLesson:
    @pytest.mark.asyncio
    async def test_first_completion(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        module = await make_module(db_session)
        lesson = (await list_lessons(db_session, module.id))[0]

        record, newly = await complete_lesson(db_session, "user-1", lesson.id, quiz_score=80)
        assert newly
        assert record.is_completed
        assert record.completed_at is not None
        assert record.quiz_score == 80

    @pytest.mark.asyncio
    async def test_repeat_completion_is_not_new(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        module = await make_module(db_session)
        lesson = (await list_lessons(db_session, module.id))[0]

        await complete_lesson(db_session, "user-1", lesson.id, quiz_score=50)
        record, newly = await complete_lesson(db_session, "user-1", lesson.id, quiz_score=90)
        assert not newly
        assert record.quiz_score == 90
        assert (await get_progress(db_session, "user-1", lesson.id)).id == record.id

    @pytest.mark.asyncio
    async def test_counts(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        first = await make_module(db_session, "First", lessons=2)
        second = await make_module(db_session, "Second", lessons=1)
        first_lessons = await list_lessons(db_session, first.id)
        second_lessons = await list_lessons(db_session, second.id)

        await complete_lesson(db_session, "user-1", first_lessons[0].id)
        await complete_lesson(db_session, "user-1", second_lessons[0].id)

        assert await completed_lesson_ids(db_session, "user-1") == {first_lessons[0].id, second_lessons[0].id}
        assert await completed_lesson_ids(db_session, "user-1", first.id) == {first_lessons[0].id}
        assert await module_completion_count(db_session, "user-1", first.id) == 1
        assert await total_completed_lessons(db_session, "user-1") == 2
        assert not await all_lessons_completed(db_session, "user-1", first.id)
        assert await all_lessons_completed(db_session, "user-1", second.id)

    @pytest.mark.asyncio
    async def test_empty_module_is_never_complete(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        module = await make_module(db_session, lessons=0)
        assert not await all_lessons_completed(db_session, "user-1", module.id)


class TestLessonFlow:
    @pytest.mark.asyncio
    async def test_first_completion_grants_rewards(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        module = await make_module(db_session, xp_reward=150)
        lesson = (await list_lessons(db_session, module.id))[0]

        svc = LearningService(db_session)
        result = await svc.complete_lesson_flow("user-1", lesson.id)

        assert not result["already_completed"]
        assert result["xp_awarded"] == 150
        assert result["coins_awarded"] == LESSON_COIN_REWARD
        assert result["profile"]["xp_total"] == 150
        assert result["profile"]["level"] == 2

    @pytest.mark.asyncio
    async def test_repeat_completion_grants_nothing(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        module = await make_module(db_session)
        lesson = (await list_lessons(db_session, module.id))[0]
        svc = LearningService(db_session)

        await svc.complete_lesson_flow("user-1", lesson.id)
        result = await svc.complete_lesson_flow("user-1", lesson.id)

        assert result["already_completed"]
        assert result["xp_awarded"] == 0
        assert result["profile"]["xp_total"] == 100
        _, total = await list_ledger(db_session, "user-1")
        assert total == 1

    @pytest.mark.asyncio
    async def test_lesson_achievements_evaluated(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        await create_achievement(db_session, "first_lesson", "First Steps", "lesson_complete", "1", coin_reward=10)
        module = await make_module(db_session)
        lessons = await list_lessons(db_session, module.id)
        svc = LearningService(db_session)

        first = await svc.complete_lesson_flow("user-1", lessons[0].id)
        second = await svc.complete_lesson_flow("user-1", lessons[1].id)

        assert [a["slug"] for a in first["achievements_earned"]] == ["first_lesson"]
        assert second["achievements_earned"] == []
        assert second["profile"]["coins"] == 2 * LESSON_COIN_REWARD + 10

    @pytest.mark.asyncio
    async def test_locked_lesson_rejected(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        module = await make_module(db_session)
        lessons = await list_lessons(db_session, module.id)

        with pytest.raises(InvalidStateError, match="locked"):
            await LearningService(db_session).complete_lesson_flow("user-1", lessons[1].id)

    @pytest.mark.asyncio
    async def test_lesson_in_locked_module_rejected(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        await make_module(db_session, "First")
        second = await make_module(db_session, "Second")
        lesson = (await list_lessons(db_session, second.id))[0]

        with pytest.raises(InvalidStateError):
            await LearningService(db_session).complete_lesson_flow("user-1", lesson.id)

    @pytest.mark.asyncio
    async def test_unknown_lesson(self, db_session, make_profile):
        await make_profile(db_session, "user-1")
        with pytest.raises(NotFoundError):
            await LearningService(db_session).complete_lesson_flow("user-1", 404)


class TestContentViews:
    @pytest.mark.asyncio
    async def test_module_detail_flags(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        module = await make_module(db_session, lessons=3, questions=4)
        lessons = await list_lessons(db_session, module.id)
        svc = LearningService(db_session)
        await svc.complete_lesson_flow("user-1", lessons[0].id)

        detail = await svc.get_module_detail(module.id, "user-1")
        assert detail["question_count"] == 4
        assert detail["completed_lessons"] == 1
        assert [(row["is_completed"], row["is_unlocked"]) for row in detail["lessons"]] == [
            (True, True),
            (False, True),
            (False, False),
        ]

    @pytest.mark.asyncio
    async def test_module_list(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        first = await make_module(db_session, "First", lessons=1)
        await make_module(db_session, "Second", lessons=2)
        lesson = (await list_lessons(db_session, first.id))[0]
        svc = LearningService(db_session)
        await svc.complete_lesson_flow("user-1", lesson.id)

        modules = await svc.list_modules("user-1")
        assert [m["title"] for m in modules] == ["First", "Second"]
        assert [m["is_locked"] for m in modules] == [False, True]
        assert modules[0]["all_lessons_completed"]
        assert modules[1]["lesson_count"] == 2
        assert modules[1]["completed_lessons"] == 0

    @pytest.mark.asyncio
    async def test_get_lesson_locked(self, db_session, make_profile, make_module):
        await make_profile(db_session, "user-1")
        module = await make_module(db_session)
        lessons = await list_lessons(db_session, module.id)
        svc = LearningService(db_session)

        content = await svc.get_lesson(lessons[0].id, "user-1")
        assert content["title"] == lessons[0].title
        with pytest.raises(InvalidStateError):
            await svc.get_lesson(lessons[1].id, "user-1")
