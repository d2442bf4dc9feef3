"""Integration tests for reward grants, idempotency and the ledger."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from unibits.db.models import RewardLedgerEntry
from unibits.errors import NotFoundError
from unibits.events import LEVEL_UP
from unibits.progression.ledger import (
    get_or_create_profile,
    grant_rewards,
    list_ledger,
    profile_snapshot,
)


class TestGetOrCreateProfile:
    @pytest.mark.asyncio
    async def test_creates_fresh_profile(self, db_session):
        """New users start at 0 XP, level 1, 0 coins."""
        profile = await get_or_create_profile(db_session, "user-new", "Ada")
        assert profile.xp_total == 0
        assert profile.level == 1
        assert profile.coins == 0
        assert profile.display_name == "Ada"
        assert profile.featured_achievements == []

    @pytest.mark.asyncio
    async def test_default_display_name(self, db_session):
        profile = await get_or_create_profile(db_session, "abcdefghijkl")
        assert profile.display_name == "user-abcdefgh"

    @pytest.mark.asyncio
    async def test_returns_existing(self, db_session):
        first = await get_or_create_profile(db_session, "user-1", "Ada")
        second = await get_or_create_profile(db_session, "user-1", "Other")
        assert first is second
        assert second.display_name == "Ada"


class TestGrantRewards:
    @pytest.mark.asyncio
    async def test_grant_150_xp_reaches_level_2(self, db_session, make_profile):
        await make_profile(db_session, "user-1")
        grant = await grant_rewards(db_session, "user-1", 150, 0, source="lesson")

        assert grant.granted
        assert grant.old_level == 1
        assert grant.new_level == 2
        assert grant.leveled_up

        snapshot = profile_snapshot(await get_or_create_profile(db_session, "user-1"))
        assert snapshot["xp_total"] == 150
        assert snapshot["level"] == 2

    @pytest.mark.asyncio
    async def test_coins_accumulate(self, db_session, make_profile):
        await make_profile(db_session, "user-1", coins=5)
        await grant_rewards(db_session, "user-1", 10, 20, source="lesson")
        await grant_rewards(db_session, "user-1", 10, 30, source="lesson")

        profile = await get_or_create_profile(db_session, "user-1")
        assert profile.coins == 55
        assert profile.xp_total == 20
        assert profile.level == 1

    @pytest.mark.asyncio
    async def test_same_idempotency_key_applies_once(self, db_session, make_profile):
        await make_profile(db_session, "user-1")
        first = await grant_rewards(db_session, "user-1", 100, 10, source="lesson", idempotency_key="lesson:1:user-1")
        second = await grant_rewards(db_session, "user-1", 100, 10, source="lesson", idempotency_key="lesson:1:user-1")

        assert first.granted
        assert not second.granted
        assert second.xp_awarded == 0
        profile = await get_or_create_profile(db_session, "user-1")
        assert profile.xp_total == 100
        assert profile.coins == 10

        count = (await db_session.execute(select(func.count(RewardLedgerEntry.id)))).scalar()
        assert count == 1

    @pytest.mark.asyncio
    async def test_every_grant_writes_a_ledger_entry(self, db_session, make_profile):
        await make_profile(db_session, "user-1")
        await grant_rewards(db_session, "user-1", 100, 10, source="lesson", source_id="4", description="Lesson 4")
        await grant_rewards(db_session, "user-1", 500, 50, source="boss", source_id="1")

        entries, total = await list_ledger(db_session, "user-1")
        assert total == 2
        assert [e.source for e in entries] == ["boss", "lesson"]
        assert entries[1].description == "Lesson 4"
        assert sum(e.xp_amount for e in entries) == 600

    @pytest.mark.asyncio
    async def test_ledger_pagination(self, db_session, make_profile):
        await make_profile(db_session, "user-1")
        for n in range(5):
            await grant_rewards(db_session, "user-1", n + 1, 0, source="lesson")

        page, total = await list_ledger(db_session, "user-1", page=2, per_page=2)
        assert total == 5
        assert [e.xp_amount for e in page] == [3, 2]

    @pytest.mark.asyncio
    async def test_negative_delta_rejected(self, db_session, make_profile):
        await make_profile(db_session, "user-1")
        with pytest.raises(ValueError, match="non-negative"):
            await grant_rewards(db_session, "user-1", -10, 0, source="lesson")

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session):
        with pytest.raises(NotFoundError):
            await grant_rewards(db_session, "ghost", 10, 0, source="lesson")

    @pytest.mark.asyncio
    async def test_level_up_event_published(self, db_session, make_profile):
        await make_profile(db_session, "user-1", xp=90)
        redis = AsyncMock()
        await grant_rewards(db_session, "user-1", 20, 0, source="lesson", redis=redis)

        redis.publish.assert_awaited_once()
        assert redis.publish.await_args.args[0] == LEVEL_UP

    @pytest.mark.asyncio
    async def test_no_event_without_level_change(self, db_session, make_profile):
        await make_profile(db_session, "user-1")
        redis = AsyncMock()
        await grant_rewards(db_session, "user-1", 20, 0, source="lesson", redis=redis)
        redis.publish.assert_not_awaited()


class TestProfileSnapshot:
    @pytest.mark.asyncio
    async def test_level_derived_from_xp(self, db_session, make_profile):
        profile = await make_profile(db_session, "user-1", xp=250)
        profile.level = 1  # stale stored level
        snapshot = profile_snapshot(profile)
        assert snapshot["level"] == 2
        assert snapshot["level_floor_xp"] == 100
        assert snapshot["next_level_xp"] == 400
        assert snapshot["progress_percent"] == 50.0
