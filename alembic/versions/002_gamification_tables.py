"""Gamification tables.

Creates user_levels, user_streaks, achievements, user_achievements and the
append-only progress_metrics audit log.

Revision ID: 002_gamification_tables
Revises: 001_progress_tables
Create Date: 2026-10-12
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_gamification_tables"
down_revision: str | None = "001_progress_tables"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- User Levels (version column guards concurrent awards) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_levels (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            current_level INTEGER NOT NULL DEFAULT 1 CHECK (current_level >= 1),
            experience INTEGER NOT NULL DEFAULT 0 CHECK (experience >= 0),
            next_level_exp INTEGER NOT NULL DEFAULT 100 CHECK (next_level_exp > 0),
            version INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (experience < next_level_exp)
        )
    """)

    # --- User Streaks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_streaks (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            current_streak INTEGER NOT NULL DEFAULT 0 CHECK (current_streak >= 0),
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_active DATE,
            version INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (longest_streak >= current_streak)
        )
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id VARCHAR(36) PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            criteria JSONB NOT NULL,
            icon VARCHAR(64),
            category VARCHAR(32) NOT NULL DEFAULT 'achievement',
            tier VARCHAR(16) NOT NULL DEFAULT 'bronze',
            xp_reward INTEGER NOT NULL DEFAULT 0,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- User Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            achievement_id VARCHAR(36) NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_achievements_user_achievement UNIQUE (user_id, achievement_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_achievements_user
        ON user_achievements(user_id, earned_at DESC)
    """)

    # --- Progress Metrics (append-only) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS progress_metrics (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            metric_type VARCHAR(32) NOT NULL,
            metric_value DOUBLE PRECISION NOT NULL,
            metric_data JSONB NOT NULL DEFAULT '{}',
            date TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_progress_metrics_user_type
        ON progress_metrics(user_id, metric_type, date DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS progress_metrics CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS user_streaks CASCADE")
    op.execute("DROP TABLE IF EXISTS user_levels CASCADE")
