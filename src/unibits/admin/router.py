"""Admin API endpoints — content authoring, shop management and roles."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from unibits.admin import service as admin
from unibits.admin.schemas import (
    AchievementCreate,
    AdminUserEntry,
    AdminUserListResponse,
    AwardAchievementRequest,
    LessonAdminResponse,
    LessonCreate,
    ModuleCreate,
    ModuleResponse,
    QuestionCreate,
    QuestionResponse,
    RoleResponse,
    RoleUpdate,
    ShopItemCreate,
    ShopItemUpdate,
)
from unibits.auth.dependencies import require_admin
from unibits.database import get_session
from unibits.db.models import Lesson, Module, QuizQuestion
from unibits.progression.achievements import achievement_to_dict, award_achievement, list_achievements
from unibits.progression.leveling import level_for_xp
from unibits.progression.schemas import AchievementResponse, AllAchievementsResponse
from unibits.redis_client import get_event_redis
from unibits.shop.router import item_response
from unibits.shop.schemas import ShopCatalogResponse, ShopItemResponse
from unibits.shop.service import list_items

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _module(m: Module) -> ModuleResponse:
    return ModuleResponse(
        id=m.id,
        title=m.title,
        description=m.description,
        icon=m.icon,
        color=m.color,
        order_index=m.order_index,
        is_locked=m.is_locked,
    )


def _lesson(lesson: Lesson) -> LessonAdminResponse:
    return LessonAdminResponse(
        id=lesson.id,
        module_id=lesson.module_id,
        title=lesson.title,
        order_index=lesson.order_index,
        xp_reward=lesson.xp_reward,
    )


def _question(q: QuizQuestion) -> QuestionResponse:
    return QuestionResponse(
        id=q.id,
        module_id=q.module_id,
        question=q.question,
        options=list(q.options),
        correct_answer=q.correct_answer,
        explanation=q.explanation,
    )


# ── Modules ──


@router.get("/modules", response_model=list[ModuleResponse])
async def list_modules(db: AsyncSession = Depends(get_session)):
    return [_module(m) for m in await admin.list_modules(db)]


@router.post("/modules", response_model=ModuleResponse, status_code=201)
async def create_module(body: ModuleCreate, db: AsyncSession = Depends(get_session)):
    module = await admin.create_module(db, body.title, body.description, body.icon, body.color)
    await db.commit()
    return _module(module)


@router.delete("/modules/{module_id}", status_code=204)
async def delete_module(module_id: int, db: AsyncSession = Depends(get_session)) -> None:
    await admin.delete_module(db, module_id)
    await db.commit()


# ── Lessons ──


@router.get("/modules/{module_id}/lessons", response_model=list[LessonAdminResponse])
async def list_lessons(module_id: int, db: AsyncSession = Depends(get_session)):
    return [_lesson(lesson) for lesson in await admin.list_lessons(db, module_id)]


@router.post("/modules/{module_id}/lessons", response_model=LessonAdminResponse, status_code=201)
async def create_lesson(module_id: int, body: LessonCreate, db: AsyncSession = Depends(get_session)):
    lesson = await admin.create_lesson(
        db, module_id, body.title, body.content_text, body.video_url, body.xp_reward
    )
    await db.commit()
    return _lesson(lesson)


@router.delete("/lessons/{lesson_id}", status_code=204)
async def delete_lesson(lesson_id: int, db: AsyncSession = Depends(get_session)) -> None:
    await admin.delete_lesson(db, lesson_id)
    await db.commit()


# ── Boss questions ──


@router.get("/modules/{module_id}/questions", response_model=list[QuestionResponse])
async def list_questions(module_id: int, db: AsyncSession = Depends(get_session)):
    return [_question(q) for q in await admin.list_questions(db, module_id)]


@router.post("/modules/{module_id}/questions", response_model=QuestionResponse, status_code=201)
async def create_question(module_id: int, body: QuestionCreate, db: AsyncSession = Depends(get_session)):
    row = await admin.create_question(
        db, module_id, body.question, body.options, body.correct_answer, body.explanation
    )
    await db.commit()
    return _question(row)


@router.delete("/questions/{question_id}", status_code=204)
async def delete_question(question_id: int, db: AsyncSession = Depends(get_session)) -> None:
    await admin.delete_question(db, question_id)
    await db.commit()


# ── Shop items ──


@router.get("/shop/items", response_model=ShopCatalogResponse)
async def list_shop_items(db: AsyncSession = Depends(get_session)):
    """All items, inactive included."""
    return ShopCatalogResponse(items=[item_response(i, owned=True) for i in await list_items(db, True)])


@router.post("/shop/items", response_model=ShopItemResponse, status_code=201)
async def create_shop_item(body: ShopItemCreate, db: AsyncSession = Depends(get_session)):
    item = await admin.create_shop_item(
        db,
        body.name,
        body.type,
        body.price,
        description=body.description,
        image_url=body.image_url,
        asset_download_url=body.asset_download_url,
        is_active=body.is_active,
    )
    await db.commit()
    return item_response(item, owned=True)


@router.patch("/shop/items/{item_id}", response_model=ShopItemResponse)
async def update_shop_item(item_id: int, body: ShopItemUpdate, db: AsyncSession = Depends(get_session)):
    item = await admin.update_shop_item(db, item_id, is_active=body.is_active, price=body.price)
    await db.commit()
    return item_response(item, owned=True)


@router.delete("/shop/items/{item_id}", status_code=204)
async def delete_shop_item(item_id: int, db: AsyncSession = Depends(get_session)) -> None:
    await admin.delete_shop_item(db, item_id)
    await db.commit()


# ── Achievements ──


@router.get("/achievements", response_model=AllAchievementsResponse)
async def list_all_achievements(db: AsyncSession = Depends(get_session)):
    achievements = await list_achievements(db)
    return AllAchievementsResponse(achievements=[AchievementResponse(**achievement_to_dict(a)) for a in achievements])


@router.post("/achievements", response_model=AchievementResponse, status_code=201)
async def create_achievement(body: AchievementCreate, db: AsyncSession = Depends(get_session)):
    achievement = await admin.create_achievement(
        db,
        body.slug,
        body.name,
        body.condition_type,
        body.condition_value,
        description=body.description,
        icon=body.icon,
        xp_reward=body.xp_reward,
        coin_reward=body.coin_reward,
    )
    await db.commit()
    return AchievementResponse(**achievement_to_dict(achievement))


@router.delete("/achievements/{achievement_id}", status_code=204)
async def delete_achievement(achievement_id: int, db: AsyncSession = Depends(get_session)) -> None:
    await admin.delete_achievement(db, achievement_id)
    await db.commit()


@router.post("/achievements/award", response_model=AchievementResponse)
async def award_custom_achievement(
    body: AwardAchievementRequest,
    db: AsyncSession = Depends(get_session),
    redis: object | None = Depends(get_event_redis),
):
    """Manually award a custom achievement to a user."""
    achievement = await award_achievement(db, body.user_id, body.achievement_id, redis=redis)
    await db.commit()
    return AchievementResponse(**achievement_to_dict(achievement))


# ── Users & roles ──


@router.get("/users", response_model=AdminUserListResponse)
async def list_users(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
):
    rows = await admin.list_users(db, limit=limit, offset=offset)
    return AdminUserListResponse(
        users=[
            AdminUserEntry(
                user_id=p.user_id,
                display_name=p.display_name,
                role=role,
                xp_total=p.xp_total,
                level=level_for_xp(p.xp_total),
                coins=p.coins,
                created_at=p.created_at,
            )
            for p, role in rows
        ]
    )


@router.put("/users/{user_id}/role", response_model=RoleResponse)
async def set_user_role(user_id: str, body: RoleUpdate, db: AsyncSession = Depends(get_session)):
    role = await admin.set_role(db, user_id, body.role)
    await db.commit()
    return RoleResponse(user_id=user_id, role=role)
