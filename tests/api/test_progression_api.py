"""Progression API tests — profile, levels, reward history and achievements over HTTP."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from unibits.admin.service import create_achievement
from unibits.progression.achievements import award_achievement
from unibits.progression.ledger import grant_rewards


@pytest.mark.asyncio
async def test_first_sign_in_creates_profile(client: AsyncClient, auth_headers) -> None:
    response = await client.get("/api/v1/me", headers=auth_headers("newcomer", "Newcomer"))
    assert response.status_code == 200
    data = response.json()
    assert data["user_id"] == "newcomer"
    assert data["display_name"] == "Newcomer"
    assert data["xp_total"] == 0
    assert data["level"] == 1
    assert data["coins"] == 0
    assert data["role"] == "student"


@pytest.mark.asyncio
async def test_level_info(client: AsyncClient) -> None:
    response = await client.get("/api/v1/levels/150")
    assert response.status_code == 200
    data = response.json()
    assert data["level"] == 2
    assert data["next_level_xp"] == 400


@pytest.mark.asyncio
async def test_level_info_negative(client: AsyncClient) -> None:
    response = await client.get("/api/v1/levels/-5")
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_reward_history(client: AsyncClient, session_factory, make_profile, auth_headers) -> None:
    async with session_factory() as db:
        await make_profile(db, "alice")
        for n in range(3):
            await grant_rewards(db, "alice", 10 * (n + 1), 1, source="lesson", source_id=str(n))
        await db.commit()

    response = await client.get("/api/v1/me/rewards", params={"per_page": 2}, headers=auth_headers("alice"))
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert [e["xp_amount"] for e in data["entries"]] == [30, 20]

    me = (await client.get("/api/v1/me", headers=auth_headers("alice"))).json()
    assert me["xp_total"] == 60
    assert me["coins"] == 3


@pytest.mark.asyncio
async def test_achievement_catalogue_is_public(client: AsyncClient, session_factory) -> None:
    async with session_factory() as db:
        await create_achievement(db, "first", "First", "lesson_complete", "1")
        await db.commit()

    response = await client.get("/api/v1/achievements")
    assert response.status_code == 200
    assert [a["slug"] for a in response.json()["achievements"]] == ["first"]


@pytest.mark.asyncio
async def test_featured_achievements(client: AsyncClient, session_factory, make_profile, auth_headers) -> None:
    async with session_factory() as db:
        await make_profile(db, "alice")
        earned = await create_achievement(db, "helper", "Helper", "custom")
        unearned = await create_achievement(db, "rare", "Rare", "custom")
        await award_achievement(db, "alice", earned.id)
        earned_id, unearned_id = earned.id, unearned.id
        await db.commit()

    headers = auth_headers("alice")
    mine = (await client.get("/api/v1/me/achievements", headers=headers)).json()
    assert mine["total_earned"] == 1
    assert mine["total_available"] == 2
    assert mine["earned"][0]["achievement"]["slug"] == "helper"

    ok = await client.put("/api/v1/me/featured-achievements", json={"achievement_ids": [earned_id]}, headers=headers)
    assert ok.status_code == 200
    assert ok.json()["featured_achievements"] == [earned_id]

    refused = await client.put(
        "/api/v1/me/featured-achievements", json={"achievement_ids": [unearned_id]}, headers=headers
    )
    assert refused.status_code == 403

    too_many = await client.put(
        "/api/v1/me/featured-achievements", json={"achievement_ids": [1, 2, 3, 4]}, headers=headers
    )
    assert too_many.status_code == 409
