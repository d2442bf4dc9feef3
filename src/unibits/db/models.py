"""ORM models for the UniBits schema.

Uniqueness and non-negativity rules live here as table constraints; the services
check them first for a friendly error, but the constraints are what hold under
concurrent requests.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from unibits.db.base import Base


# ---------------------------------------------------------------------------
# Profiles & roles
# ---------------------------------------------------------------------------


class Profile(Base):
    """Per-user game profile, keyed by the identity provider's opaque user id."""

    __tablename__ = "profiles"
    __table_args__ = (
        CheckConstraint("coins >= 0", name="coins_non_negative"),
        CheckConstraint("xp_total >= 0", name="xp_non_negative"),
    )

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(64), nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    xp_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    current_avatar_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("shop_items.id", ondelete="SET NULL"), nullable=True
    )
    current_frame_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("shop_items.id", ondelete="SET NULL"), nullable=True
    )
    featured_achievements: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserRole(Base):
    """Role assignment — one row per user, absent means student."""

    __tablename__ = "user_roles"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.user_id", ondelete="CASCADE"), primary_key=True
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="student", server_default="student")
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Content: modules, lessons, boss questions
# ---------------------------------------------------------------------------


class Module(Base):
    """Ordered content unit. order_index is consecutive from 0."""

    __tablename__ = "modules"
    __table_args__ = (UniqueConstraint("order_index", name="uq_module_order"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    color: Mapped[str | None] = mapped_column(String(32), nullable=True)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Lesson(Base):
    """Lesson inside a module, ordered by order_index within the module."""

    __tablename__ = "lessons"
    __table_args__ = (
        UniqueConstraint("module_id", "order_index", name="uq_lesson_module_order"),
        CheckConstraint("xp_reward > 0", name="xp_reward_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(Integer, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=100, server_default="100")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class QuizQuestion(Base):
    """Boss-fight question belonging to a module."""

    __tablename__ = "quiz_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(Integer, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    correct_answer: Mapped[int] = mapped_column(Integer, nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


class UserProgress(Base):
    """Lesson progress — UNIQUE(user_id, lesson_id), written with upsert semantics."""

    __tablename__ = "user_progress"
    __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="uq_user_progress_user_lesson"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    lesson_id: Mapped[int] = mapped_column(Integer, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    quiz_score: Mapped[int | None] = mapped_column(Integer, nullable=True)


class BossVictory(Base):
    """First passed boss fight per (user, module)."""

    __tablename__ = "boss_victories"
    __table_args__ = (UniqueConstraint("user_id", "module_id", name="uq_boss_victory_user_module"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    module_id: Mapped[int] = mapped_column(Integer, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False)
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, nullable=False)
    is_perfect: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    defeated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Rewards: ledger & achievements
# ---------------------------------------------------------------------------


class RewardLedgerEntry(Base):
    """Immutable XP/coin grant log with optional idempotency key."""

    __tablename__ = "reward_ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    xp_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    coin_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Achievement(Base):
    """Achievement definition, evaluated by condition_type against a threshold."""

    __tablename__ = "achievements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str] = mapped_column(String(64), nullable=False, default="trophy", server_default="trophy")
    condition_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    condition_value: Mapped[str | None] = mapped_column(String(32), nullable=True)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    coin_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserAchievement(Base):
    """Earned achievements — UNIQUE(user_id, achievement_id) prevents duplicates."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name="uq_user_achievement_user_achievement"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    achievement_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("achievements.id", ondelete="CASCADE"), nullable=False
    )
    earned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    achievement: Mapped[Achievement] = relationship("Achievement", lazy="joined")


# ---------------------------------------------------------------------------
# Shop
# ---------------------------------------------------------------------------


class ShopItem(Base):
    """Purchasable cosmetic or asset. Only active items can be bought."""

    __tablename__ = "shop_items"
    __table_args__ = (CheckConstraint("price >= 0", name="price_non_negative"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    asset_download_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class UserInventory(Base):
    """Owned items — UNIQUE(user_id, item_id), insert-only."""

    __tablename__ = "user_inventory"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="uq_user_inventory_user_item"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[int] = mapped_column(Integer, ForeignKey("shop_items.id", ondelete="CASCADE"), nullable=False)
    purchased_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    item: Mapped[ShopItem] = relationship("ShopItem", lazy="joined")


# ---------------------------------------------------------------------------
# Social
# ---------------------------------------------------------------------------


class Friendship(Base):
    """Friendship between two users.

    user_low_id/user_high_id hold the pair sorted, so the unique constraint
    covers both directions.
    """

    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("user_low_id", "user_high_id", name="uq_friendship_pair"),
        CheckConstraint("requester_id <> addressee_id", name="not_self"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    addressee_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    user_low_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_high_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def friendship_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Return the (low, high) ordering used for the unordered-pair constraint."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)
