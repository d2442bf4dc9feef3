"""Admin authoring: modules, lessons, boss questions, shop items, achievements and roles."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.auth.dependencies import ROLES, get_user_role
from unibits.db.models import Achievement, Lesson, Module, Profile, QuizQuestion, ShopItem, UserRole
from unibits.errors import AlreadyExistsError, ConfigurationError, NotFoundError
from unibits.progression.achievements import validate_condition
from unibits.shop.service import ItemType

logger = logging.getLogger(__name__)

MIN_OPTIONS = 2
MAX_OPTIONS = 6


# --- Modules ---


async def list_modules(db: AsyncSession) -> list[Module]:
    result = await db.execute(select(Module).order_by(Module.order_index))
    return list(result.scalars().all())


async def create_module(
    db: AsyncSession,
    title: str,
    description: str | None = None,
    icon: str | None = None,
    color: str | None = None,
) -> Module:
    """Append a module. The first module is created unlocked, later ones locked."""
    count = (await db.execute(select(func.count(Module.id)))).scalar() or 0
    module = Module(
        title=title,
        description=description,
        icon=icon,
        color=color,
        order_index=count,
        is_locked=count != 0,
        created_at=datetime.now(timezone.utc),
    )
    try:
        async with db.begin_nested():
            db.add(module)
    except IntegrityError:
        raise AlreadyExistsError("Module order changed concurrently, please retry") from None
    logger.info("Module %d created at index %d", module.id, module.order_index)
    return module


async def delete_module(db: AsyncSession, module_id: int) -> None:
    """Delete a module and close the gap in order_index."""
    module = await db.get(Module, module_id)
    if module is None:
        raise NotFoundError("Module not found", module_id=module_id)
    removed_index = module.order_index

    async with db.begin_nested():
        await db.delete(module)
        await db.flush()
        later = await db.execute(
            select(Module).where(Module.order_index > removed_index).order_by(Module.order_index)
        )
        for other in later.scalars().all():
            other.order_index -= 1
            # One row at a time keeps the unique index satisfied
            await db.flush()
        if removed_index == 0:
            first = (await db.execute(select(Module).where(Module.order_index == 0))).scalar_one_or_none()
            if first is not None and first.is_locked:
                first.is_locked = False
                await db.flush()
    logger.info("Module %d deleted, later modules shifted down", module_id)


# --- Lessons ---


async def create_lesson(
    db: AsyncSession,
    module_id: int,
    title: str,
    content_text: str | None = None,
    video_url: str | None = None,
    xp_reward: int = 100,
) -> Lesson:
    """Append a lesson to a module."""
    if await db.get(Module, module_id) is None:
        raise NotFoundError("Module not found", module_id=module_id)
    if xp_reward <= 0:
        raise ConfigurationError("xp_reward must be positive", xp_reward=xp_reward)

    count = (await db.execute(
        select(func.count(Lesson.id)).where(Lesson.module_id == module_id)
    )).scalar() or 0
    lesson = Lesson(
        module_id=module_id,
        order_index=count,
        title=title,
        content_text=content_text,
        video_url=video_url,
        xp_reward=xp_reward,
        created_at=datetime.now(timezone.utc),
    )
    try:
        async with db.begin_nested():
            db.add(lesson)
    except IntegrityError:
        raise AlreadyExistsError("Lesson order changed concurrently, please retry") from None
    return lesson


async def delete_lesson(db: AsyncSession, lesson_id: int) -> None:
    lesson = await db.get(Lesson, lesson_id)
    if lesson is None:
        raise NotFoundError("Lesson not found", lesson_id=lesson_id)
    module_id, removed_index = lesson.module_id, lesson.order_index

    async with db.begin_nested():
        await db.delete(lesson)
        await db.flush()
        later = await db.execute(
            select(Lesson)
            .where(Lesson.module_id == module_id, Lesson.order_index > removed_index)
            .order_by(Lesson.order_index)
        )
        for other in later.scalars().all():
            other.order_index -= 1
            await db.flush()


async def list_lessons(db: AsyncSession, module_id: int) -> list[Lesson]:
    result = await db.execute(
        select(Lesson).where(Lesson.module_id == module_id).order_by(Lesson.order_index)
    )
    return list(result.scalars().all())


# --- Boss questions ---


def validate_question(options: list[str], correct_answer: int) -> None:
    if not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
        raise ConfigurationError(
            f"A question needs between {MIN_OPTIONS} and {MAX_OPTIONS} options",
            option_count=len(options),
        )
    if not 0 <= correct_answer < len(options):
        raise ConfigurationError(
            "correct_answer must index one of the options",
            correct_answer=correct_answer,
        )


async def create_question(
    db: AsyncSession,
    module_id: int,
    question: str,
    options: list[str],
    correct_answer: int,
    explanation: str | None = None,
) -> QuizQuestion:
    if await db.get(Module, module_id) is None:
        raise NotFoundError("Module not found", module_id=module_id)
    validate_question(options, correct_answer)
    row = QuizQuestion(
        module_id=module_id,
        question=question,
        options=list(options),
        correct_answer=correct_answer,
        explanation=explanation,
        created_at=datetime.now(timezone.utc),
    )
    db.add(row)
    await db.flush()
    return row


async def list_questions(db: AsyncSession, module_id: int) -> list[QuizQuestion]:
    result = await db.execute(
        select(QuizQuestion)
        .where(QuizQuestion.module_id == module_id)
        .order_by(QuizQuestion.created_at, QuizQuestion.id)
    )
    return list(result.scalars().all())


async def delete_question(db: AsyncSession, question_id: int) -> None:
    row = await db.get(QuizQuestion, question_id)
    if row is None:
        raise NotFoundError("Question not found", question_id=question_id)
    await db.delete(row)
    await db.flush()


# --- Shop items ---


async def create_shop_item(
    db: AsyncSession,
    name: str,
    item_type: str,
    price: int,
    description: str | None = None,
    image_url: str | None = None,
    asset_download_url: str | None = None,
    is_active: bool = True,
) -> ShopItem:
    try:
        item_type = ItemType(item_type).value
    except ValueError:
        raise ConfigurationError(f"Unknown item type '{item_type}'", type=item_type) from None
    if price < 0:
        raise ConfigurationError("price must be >= 0", price=price)

    item = ShopItem(
        name=name,
        description=description,
        type=item_type,
        price=price,
        image_url=image_url,
        asset_download_url=asset_download_url,
        is_active=is_active,
        created_at=datetime.now(timezone.utc),
    )
    db.add(item)
    await db.flush()
    return item


async def update_shop_item(
    db: AsyncSession,
    item_id: int,
    *,
    is_active: bool | None = None,
    price: int | None = None,
) -> ShopItem:
    item = await db.get(ShopItem, item_id)
    if item is None:
        raise NotFoundError("Item not found", item_id=item_id)
    if price is not None:
        if price < 0:
            raise ConfigurationError("price must be >= 0", price=price)
        item.price = price
    if is_active is not None:
        item.is_active = is_active
    await db.flush()
    return item


async def delete_shop_item(db: AsyncSession, item_id: int) -> None:
    item = await db.get(ShopItem, item_id)
    if item is None:
        raise NotFoundError("Item not found", item_id=item_id)
    await db.delete(item)
    await db.flush()


# --- Achievements ---


async def create_achievement(
    db: AsyncSession,
    slug: str,
    name: str,
    condition_type: str,
    condition_value: str | int | None = None,
    description: str | None = None,
    icon: str = "trophy",
    xp_reward: int = 0,
    coin_reward: int = 0,
) -> Achievement:
    """Create an achievement, validating its condition up front."""
    ctype, value = validate_condition(condition_type, condition_value)
    if xp_reward < 0 or coin_reward < 0:
        raise ConfigurationError("Rewards must be >= 0", xp_reward=xp_reward, coin_reward=coin_reward)

    achievement = Achievement(
        slug=slug,
        name=name,
        description=description,
        icon=icon,
        condition_type=ctype.value,
        condition_value=value,
        xp_reward=xp_reward,
        coin_reward=coin_reward,
        created_at=datetime.now(timezone.utc),
    )
    try:
        async with db.begin_nested():
            db.add(achievement)
    except IntegrityError:
        raise AlreadyExistsError("Achievement slug already exists", slug=slug) from None
    return achievement


async def delete_achievement(db: AsyncSession, achievement_id: int) -> None:
    achievement = await db.get(Achievement, achievement_id)
    if achievement is None:
        raise NotFoundError("Achievement not found", achievement_id=achievement_id)
    await db.delete(achievement)
    await db.flush()


# --- Users & roles ---


async def list_users(db: AsyncSession, limit: int = 100, offset: int = 0) -> list[tuple[Profile, str]]:
    """Profiles with their role, newest first."""
    result = await db.execute(
        select(Profile, UserRole.role)
        .outerjoin(UserRole, UserRole.user_id == Profile.user_id)
        .order_by(Profile.created_at.desc(), Profile.user_id)
        .offset(offset)
        .limit(limit)
    )
    return [(profile, role or "student") for profile, role in result.all()]


async def set_role(db: AsyncSession, user_id: str, role: str) -> str:
    if role not in ROLES:
        raise ConfigurationError(f"Unknown role '{role}'", role=role)
    if await db.get(Profile, user_id) is None:
        raise NotFoundError("User not found", user_id=user_id)

    row = await db.get(UserRole, user_id)
    now = datetime.now(timezone.utc)
    if row is None:
        db.add(UserRole(user_id=user_id, role=role, updated_at=now))
    else:
        row.role = role
        row.updated_at = now
    await db.flush()
    logger.info("Role of %s set to %s", user_id, role)
    return await get_user_role(db, user_id)
