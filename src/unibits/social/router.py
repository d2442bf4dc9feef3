"""Social API endpoints — user search, public profiles and friendships."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.auth.dependencies import get_current_profile
from unibits.database import get_session
from unibits.db.models import Friendship, Profile
from unibits.progression.leveling import level_for_xp
from unibits.redis_client import get_event_redis
from unibits.social.friendships import (
    accept_request,
    friendship_status,
    list_friends,
    received_requests,
    remove_friendship,
    send_request,
    sent_requests,
)
from unibits.social.profiles import public_profile, search_profiles
from unibits.social.schemas import (
    FriendEntry,
    FriendListResponse,
    FriendRequestCreate,
    FriendshipResponse,
    FriendshipStatusResponse,
    PublicProfileResponse,
    UserSearchResponse,
    UserSearchResult,
)

router = APIRouter(prefix="/api/v1", tags=["Social"])


def _friendship(f: Friendship) -> FriendshipResponse:
    return FriendshipResponse(
        id=f.id,
        requester_id=f.requester_id,
        addressee_id=f.addressee_id,
        status=f.status,
        created_at=f.created_at,
        updated_at=f.updated_at,
    )


def _friend_list(rows: list[tuple[Friendship, Profile]]) -> FriendListResponse:
    friends = [
        FriendEntry(
            friendship_id=f.id,
            user_id=p.user_id,
            display_name=p.display_name,
            avatar_url=p.avatar_url,
            level=level_for_xp(p.xp_total),
            status=f.status,
            since=f.updated_at,
        )
        for f, p in rows
    ]
    return FriendListResponse(friends=friends, total=len(friends))


# ── Profiles ──


@router.get("/users/search", response_model=UserSearchResponse)
async def search_users(
    q: str = Query("", max_length=64),
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Search users by display name (at least 2 characters, 10 results max)."""
    results = await search_profiles(db, q, exclude_user_id=profile.user_id)
    return UserSearchResponse(
        results=[
            UserSearchResult(
                user_id=p.user_id,
                display_name=p.display_name,
                avatar_url=p.avatar_url,
                level=level_for_xp(p.xp_total),
            )
            for p in results
        ]
    )


@router.get("/users/{user_id}/profile", response_model=PublicProfileResponse)
async def get_public_profile(
    user_id: str,
    profile: Profile = Depends(get_current_profile),  # noqa: ARG001
    db: AsyncSession = Depends(get_session),
):
    """Public profile of any user."""
    return PublicProfileResponse(**await public_profile(db, user_id))


# ── Friendships ──


@router.get("/friends", response_model=FriendListResponse)
async def get_friends(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    return _friend_list(await list_friends(db, profile.user_id))


@router.get("/friends/requests/received", response_model=FriendListResponse)
async def get_received_requests(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    return _friend_list(await received_requests(db, profile.user_id))


@router.get("/friends/requests/sent", response_model=FriendListResponse)
async def get_sent_requests(
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    return _friend_list(await sent_requests(db, profile.user_id))


@router.get("/friends/status/{user_id}", response_model=FriendshipStatusResponse)
async def get_friendship_status(
    user_id: str,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    return FriendshipStatusResponse(**await friendship_status(db, profile.user_id, user_id))


@router.post("/friends/requests", response_model=FriendshipResponse, status_code=201)
async def create_friend_request(
    body: FriendRequestCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_event_redis),
):
    """Send a friend request."""
    friendship = await send_request(db, profile.user_id, body.addressee_id, redis=redis)
    await db.commit()
    return _friendship(friendship)


@router.post("/friends/{friendship_id}/accept", response_model=FriendshipResponse)
async def accept_friend_request(
    friendship_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
):
    """Accept a pending request addressed to the caller."""
    friendship = await accept_request(db, friendship_id, profile.user_id)
    await db.commit()
    return _friendship(friendship)


@router.delete("/friends/{friendship_id}", status_code=204)
async def delete_friendship(
    friendship_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_session),
) -> None:
    """Decline, cancel, or unfriend."""
    await remove_friendship(db, friendship_id, profile.user_id)
    await db.commit()
