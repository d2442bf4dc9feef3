"""Integration tests for admin authoring of content, shop items, achievements and roles."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from unibits.admin import service as admin
from unibits.auth.dependencies import get_user_role
from unibits.db.models import Lesson, Module
from unibits.errors import AlreadyExistsError, ConfigurationError, NotFoundError


async def _module_rows(db) -> list[tuple[str, int, bool]]:
    result = await db.execute(select(Module).order_by(Module.order_index))
    return [(m.title, m.order_index, m.is_locked) for m in result.scalars().all()]


class TestModules:
    @pytest.mark.asyncio
    async def test_first_module_unlocked(self, db_session):
        await admin.create_module(db_session, "A")
        await admin.create_module(db_session, "B")
        assert await _module_rows(db_session) == [("A", 0, False), ("B", 1, True)]

    @pytest.mark.asyncio
    async def test_delete_middle_module_closes_gap(self, db_session):
        await admin.create_module(db_session, "A")
        b = await admin.create_module(db_session, "B")
        await admin.create_module(db_session, "C")

        await admin.delete_module(db_session, b.id)
        assert await _module_rows(db_session) == [("A", 0, False), ("C", 1, True)]

    @pytest.mark.asyncio
    async def test_delete_first_module_unlocks_new_first(self, db_session):
        a = await admin.create_module(db_session, "A")
        await admin.create_module(db_session, "B")

        await admin.delete_module(db_session, a.id)
        assert await _module_rows(db_session) == [("B", 0, False)]

    @pytest.mark.asyncio
    async def test_delete_module_removes_its_lessons(self, db_session):
        module = await admin.create_module(db_session, "A")
        await admin.create_lesson(db_session, module.id, "Intro")

        await admin.delete_module(db_session, module.id)
        db_session.expunge_all()
        remaining = (await db_session.execute(select(Lesson))).scalars().all()
        assert remaining == []

    @pytest.mark.asyncio
    async def test_delete_unknown_module(self, db_session):
        with pytest.raises(NotFoundError):
            await admin.delete_module(db_session, 404)


class TestLessons:
    @pytest.mark.asyncio
    async def test_lessons_appended_in_order(self, db_session):
        module = await admin.create_module(db_session, "A")
        for title in ("One", "Two", "Three"):
            await admin.create_lesson(db_session, module.id, title)

        lessons = await admin.list_lessons(db_session, module.id)
        assert [(lesson.title, lesson.order_index) for lesson in lessons] == [("One", 0), ("Two", 1), ("Three", 2)]

    @pytest.mark.asyncio
    async def test_delete_lesson_reindexes(self, db_session):
        module = await admin.create_module(db_session, "A")
        one = await admin.create_lesson(db_session, module.id, "One")
        await admin.create_lesson(db_session, module.id, "Two")

        await admin.delete_lesson(db_session, one.id)
        lessons = await admin.list_lessons(db_session, module.id)
        assert [(lesson.title, lesson.order_index) for lesson in lessons] == [("Two", 0)]

    @pytest.mark.asyncio
    async def test_xp_reward_must_be_positive(self, db_session):
        module = await admin.create_module(db_session, "A")
        with pytest.raises(ConfigurationError):
            await admin.create_lesson(db_session, module.id, "Free", xp_reward=0)

    @pytest.mark.asyncio
    async def test_unknown_module(self, db_session):
        with pytest.raises(NotFoundError):
            await admin.create_lesson(db_session, 404, "Orphan")


class TestQuestions:
    @pytest.mark.asyncio
    async def test_create_and_list(self, db_session):
        module = await admin.create_module(db_session, "A")
        q = await admin.create_question(db_session, module.id, "2 + 2?", ["3", "4"], 1, explanation="Arithmetic")

        questions = await admin.list_questions(db_session, module.id)
        assert [row.id for row in questions] == [q.id]
        assert questions[0].options == ["3", "4"]

    @pytest.mark.parametrize(
        ("options", "correct"),
        [
            (["only"], 0),
            (["a", "b", "c", "d", "e", "f", "g"], 0),
            (["a", "b"], 2),
            (["a", "b"], -1),
        ],
    )
    def test_validation(self, options, correct):
        with pytest.raises(ConfigurationError):
            admin.validate_question(options, correct)

    @pytest.mark.asyncio
    async def test_delete(self, db_session):
        module = await admin.create_module(db_session, "A")
        q = await admin.create_question(db_session, module.id, "?", ["a", "b"], 0)
        await admin.delete_question(db_session, q.id)
        assert await admin.list_questions(db_session, module.id) == []
        with pytest.raises(NotFoundError):
            await admin.delete_question(db_session, q.id)


class TestShopItems:
    @pytest.mark.asyncio
    async def test_unknown_type(self, db_session):
        with pytest.raises(ConfigurationError):
            await admin.create_shop_item(db_session, "Hat", "hat", 10)

    @pytest.mark.asyncio
    async def test_negative_price(self, db_session):
        with pytest.raises(ConfigurationError):
            await admin.create_shop_item(db_session, "Robot", "avatar", -1)

    @pytest.mark.asyncio
    async def test_update(self, db_session):
        item = await admin.create_shop_item(db_session, "Robot", "avatar", 100)
        updated = await admin.update_shop_item(db_session, item.id, price=80, is_active=False)
        assert updated.price == 80
        assert not updated.is_active

    @pytest.mark.asyncio
    async def test_delete_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            await admin.delete_shop_item(db_session, 404)


class TestAchievements:
    @pytest.mark.asyncio
    async def test_invalid_condition_rejected_at_authoring(self, db_session):
        with pytest.raises(ConfigurationError):
            await admin.create_achievement(db_session, "bad", "Bad", "lesson_complete", "many")

    @pytest.mark.asyncio
    async def test_duplicate_slug(self, db_session):
        await admin.create_achievement(db_session, "first", "First", "lesson_complete", "1")
        with pytest.raises(AlreadyExistsError):
            await admin.create_achievement(db_session, "first", "Again", "lesson_complete", "1")

    @pytest.mark.asyncio
    async def test_negative_reward(self, db_session):
        with pytest.raises(ConfigurationError):
            await admin.create_achievement(db_session, "x", "X", "custom", xp_reward=-5)

    @pytest.mark.asyncio
    async def test_delete(self, db_session):
        achievement = await admin.create_achievement(db_session, "x", "X", "custom")
        await admin.delete_achievement(db_session, achievement.id)
        with pytest.raises(NotFoundError):
            await admin.delete_achievement(db_session, achievement.id)


class TestRoles:
    @pytest.mark.asyncio
    async def test_default_role(self, db_session, make_profile):
        await make_profile(db_session, "u1")
        assert await get_user_role(db_session, "u1") == "student"

    @pytest.mark.asyncio
    async def test_set_role(self, db_session, make_profile):
        await make_profile(db_session, "u1")
        assert await admin.set_role(db_session, "u1", "admin") == "admin"
        assert await admin.set_role(db_session, "u1", "moderator") == "moderator"

        users = await admin.list_users(db_session)
        assert [(p.user_id, role) for p, role in users] == [("u1", "moderator")]

    @pytest.mark.asyncio
    async def test_unknown_role(self, db_session, make_profile):
        await make_profile(db_session, "u1")
        with pytest.raises(ConfigurationError):
            await admin.set_role(db_session, "u1", "superuser")

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            await admin.set_role(db_session, "ghost", "admin")
