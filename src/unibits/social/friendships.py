"""Friendship lifecycle: request, accept, remove, and symmetric lookups.

A pair of users has at most one friendship record regardless of direction; the
sorted (user_low_id, user_high_id) columns carry the unique constraint.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.db.models import Friendship, Profile, friendship_pair
from unibits.errors import AlreadyExistsError, InvalidStateError, NotFoundError, UnauthorizedError
from unibits.events import FRIEND_REQUEST, publish_event
from unibits.progression.ledger import get_profile

logger = logging.getLogger(__name__)

PENDING = "pending"
ACCEPTED = "accepted"
BLOCKED = "blocked"

# Removal deletes the record and is allowed from any status
VALID_TRANSITIONS: dict[str, list[str]] = {
    PENDING: [ACCEPTED],
    ACCEPTED: [],
    BLOCKED: [],
}


def validate_transition(current_status: str, target_status: str) -> None:
    """Raise InvalidStateError if the status change is not allowed."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status not in valid:
        raise InvalidStateError(
            f"Invalid transition: {current_status} -> {target_status}",
            status=current_status,
        )


def counterpart_id(friendship: Friendship, user_id: str) -> str:
    """The other side of the friendship from ``user_id``'s point of view."""
    return friendship.addressee_id if friendship.requester_id == user_id else friendship.requester_id


async def find_between(db: AsyncSession, user_a: str, user_b: str) -> Friendship | None:
    """The record between two users in either direction, if any."""
    low, high = friendship_pair(user_a, user_b)
    result = await db.execute(
        select(Friendship).where(Friendship.user_low_id == low, Friendship.user_high_id == high)
    )
    return result.scalar_one_or_none()


async def _get(db: AsyncSession, friendship_id: int) -> Friendship:
    friendship = await db.get(Friendship, friendship_id)
    if friendship is None:
        raise NotFoundError("Friendship not found", friendship_id=friendship_id)
    return friendship


async def send_request(
    db: AsyncSession,
    requester_id: str,
    addressee_id: str,
    redis: object | None = None,
) -> Friendship:
    """Create a pending request from requester to addressee."""
    if requester_id == addressee_id:
        raise InvalidStateError("You cannot send a friend request to yourself")
    if await get_profile(db, addressee_id) is None:
        raise NotFoundError("User not found", user_id=addressee_id)
    if await find_between(db, requester_id, addressee_id) is not None:
        raise AlreadyExistsError("A friendship with this user already exists", user_id=addressee_id)

    now = datetime.now(timezone.utc)
    low, high = friendship_pair(requester_id, addressee_id)
    friendship = Friendship(
        requester_id=requester_id,
        addressee_id=addressee_id,
        user_low_id=low,
        user_high_id=high,
        status=PENDING,
        created_at=now,
        updated_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(friendship)
            await db.flush()
    except IntegrityError:
        raise AlreadyExistsError("A friendship with this user already exists", user_id=addressee_id) from None

    logger.info("Friend request %s -> %s", requester_id, addressee_id)
    await publish_event(redis, FRIEND_REQUEST, {
        "friendship_id": friendship.id,
        "requester_id": requester_id,
        "addressee_id": addressee_id,
    })
    return friendship


async def accept_request(db: AsyncSession, friendship_id: int, user_id: str) -> Friendship:
    """Accept a pending request. Only the addressee may accept."""
    friendship = await _get(db, friendship_id)
    if friendship.addressee_id != user_id:
        raise UnauthorizedError("Only the recipient can accept this request", friendship_id=friendship_id)
    validate_transition(friendship.status, ACCEPTED)

    friendship.status = ACCEPTED
    friendship.updated_at = datetime.now(timezone.utc)
    await db.flush()
    logger.info("Friendship %d accepted by %s", friendship_id, user_id)
    return friendship


async def remove_friendship(db: AsyncSession, friendship_id: int, user_id: str) -> None:
    """Delete the record (decline, cancel, or unfriend). Either participant may remove."""
    friendship = await _get(db, friendship_id)
    if user_id not in (friendship.requester_id, friendship.addressee_id):
        raise UnauthorizedError("Not a participant in this friendship", friendship_id=friendship_id)
    status = friendship.status
    await db.delete(friendship)
    await db.flush()
    logger.info("Friendship %d (%s) removed by %s", friendship_id, status, user_id)


async def list_friends(db: AsyncSession, user_id: str) -> list[tuple[Friendship, Profile]]:
    """Accepted friendships with the counterpart's profile."""
    result = await db.execute(
        select(Friendship).where(
            Friendship.status == ACCEPTED,
            or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id),
        ).order_by(Friendship.updated_at.desc(), Friendship.id.desc())
    )
    return await _with_profiles(db, list(result.scalars().all()), user_id)


async def received_requests(db: AsyncSession, user_id: str) -> list[tuple[Friendship, Profile]]:
    result = await db.execute(
        select(Friendship)
        .where(Friendship.addressee_id == user_id, Friendship.status == PENDING)
        .order_by(Friendship.created_at.desc(), Friendship.id.desc())
    )
    return await _with_profiles(db, list(result.scalars().all()), user_id)


async def sent_requests(db: AsyncSession, user_id: str) -> list[tuple[Friendship, Profile]]:
    result = await db.execute(
        select(Friendship)
        .where(Friendship.requester_id == user_id, Friendship.status == PENDING)
        .order_by(Friendship.created_at.desc(), Friendship.id.desc())
    )
    return await _with_profiles(db, list(result.scalars().all()), user_id)


async def friendship_status(db: AsyncSession, user_id: str, other_id: str) -> dict:
    """Relationship with one counterpart as seen by ``user_id``."""
    friendship = await find_between(db, user_id, other_id)
    if friendship is None:
        return {"status": "none", "friendship_id": None, "direction": None}
    return {
        "status": friendship.status,
        "friendship_id": friendship.id,
        "direction": "outgoing" if friendship.requester_id == user_id else "incoming",
    }


async def _with_profiles(
    db: AsyncSession,
    friendships: list[Friendship],
    user_id: str,
) -> list[tuple[Friendship, Profile]]:
    ids = {counterpart_id(f, user_id) for f in friendships}
    if not ids:
        return []
    result = await db.execute(select(Profile).where(Profile.user_id.in_(ids)))
    profiles = {p.user_id: p for p in result.scalars().all()}
    return [
        (f, profiles[counterpart_id(f, user_id)])
        for f in friendships
        if counterpart_id(f, user_id) in profiles
    ]
