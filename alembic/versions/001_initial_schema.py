"""Initial schema: profiles, content, progress, rewards, shop and social tables.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Shop items (profiles reference equipped items) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS shop_items (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT,
            type VARCHAR(16) NOT NULL,
            price INTEGER NOT NULL,
            image_url VARCHAR(512),
            asset_download_url VARCHAR(512),
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_shop_items_price_non_negative CHECK (price >= 0)
        )
    """)

    # --- Profiles & roles ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            user_id VARCHAR(64) PRIMARY KEY,
            display_name VARCHAR(64) NOT NULL,
            avatar_url TEXT,
            xp_total INTEGER NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            coins INTEGER NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            current_avatar_id INTEGER REFERENCES shop_items(id) ON DELETE SET NULL,
            current_frame_id INTEGER REFERENCES shop_items(id) ON DELETE SET NULL,
            featured_achievements JSON NOT NULL DEFAULT '[]',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_profiles_coins_non_negative CHECK (coins >= 0),
            CONSTRAINT ck_profiles_xp_non_negative CHECK (xp_total >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_profiles_display_name_lower
        ON profiles(LOWER(display_name))
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_roles (
            user_id VARCHAR(64) PRIMARY KEY REFERENCES profiles(user_id) ON DELETE CASCADE,
            role VARCHAR(16) NOT NULL DEFAULT 'student',
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Content ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS modules (
            id SERIAL PRIMARY KEY,
            title VARCHAR(200) NOT NULL,
            description TEXT,
            icon VARCHAR(64),
            color VARCHAR(32),
            order_index INTEGER NOT NULL,
            is_locked BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_module_order UNIQUE (order_index)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS lessons (
            id SERIAL PRIMARY KEY,
            module_id INTEGER NOT NULL REFERENCES modules(id) ON DELETE CASCADE,
            order_index INTEGER NOT NULL,
            title VARCHAR(200) NOT NULL,
            content_text TEXT,
            video_url VARCHAR(512),
            xp_reward INTEGER NOT NULL DEFAULT 100,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_lesson_module_order UNIQUE (module_id, order_index),
            CONSTRAINT ck_lessons_xp_reward_positive CHECK (xp_reward > 0)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS quiz_questions (
            id SERIAL PRIMARY KEY,
            module_id INTEGER NOT NULL REFERENCES modules(id) ON DELETE CASCADE,
            question TEXT NOT NULL,
            options JSON NOT NULL,
            correct_answer INTEGER NOT NULL,
            explanation TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_quiz_questions_module
        ON quiz_questions(module_id)
    """)

    # --- Progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progress (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(user_id) ON DELETE CASCADE,
            lesson_id INTEGER NOT NULL REFERENCES lessons(id) ON DELETE CASCADE,
            is_completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            quiz_score INTEGER,
            CONSTRAINT uq_user_progress_user_lesson UNIQUE (user_id, lesson_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS boss_victories (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(user_id) ON DELETE CASCADE,
            module_id INTEGER NOT NULL REFERENCES modules(id) ON DELETE CASCADE,
            score INTEGER NOT NULL,
            total_questions INTEGER NOT NULL,
            is_perfect BOOLEAN NOT NULL DEFAULT false,
            defeated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_boss_victory_user_module UNIQUE (user_id, module_id)
        )
    """)

    # --- Rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(user_id) ON DELETE CASCADE,
            xp_amount INTEGER NOT NULL,
            coin_amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            description VARCHAR(256),
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_reward_ledger_user_time
        ON reward_ledger(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT,
            icon VARCHAR(64) NOT NULL DEFAULT 'trophy',
            condition_type VARCHAR(32) NOT NULL,
            condition_value VARCHAR(32),
            xp_reward INTEGER NOT NULL DEFAULT 0,
            coin_reward INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_achievements_condition_type
        ON achievements(condition_type)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(user_id) ON DELETE CASCADE,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_achievement_user_achievement UNIQUE (user_id, achievement_id)
        )
    """)

    # --- Inventory ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_inventory (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES profiles(user_id) ON DELETE CASCADE,
            item_id INTEGER NOT NULL REFERENCES shop_items(id) ON DELETE CASCADE,
            purchased_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_inventory_user_item UNIQUE (user_id, item_id)
        )
    """)

    # --- Social ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS friendships (
            id SERIAL PRIMARY KEY,
            requester_id VARCHAR(64) NOT NULL REFERENCES profiles(user_id) ON DELETE CASCADE,
            addressee_id VARCHAR(64) NOT NULL REFERENCES profiles(user_id) ON DELETE CASCADE,
            user_low_id VARCHAR(64) NOT NULL,
            user_high_id VARCHAR(64) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_friendship_pair UNIQUE (user_low_id, user_high_id),
            CONSTRAINT ck_friendships_not_self CHECK (requester_id <> addressee_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_friendships_addressee
        ON friendships(addressee_id, status)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_friendships_requester
        ON friendships(requester_id, status)
    """)


def downgrade() -> None:
    for table in (
        "friendships",
        "user_inventory",
        "user_achievements",
        "achievements",
        "reward_ledger",
        "boss_victories",
        "user_progress",
        "quiz_questions",
        "lessons",
        "modules",
        "user_roles",
        "profiles",
        "shop_items",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
