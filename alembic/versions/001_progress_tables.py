"""Users, topics and progress-tracking tables.

Creates users (identity-provider mirror), topics, user_progress,
user_assessments, user_activities and user_goals.

Revision ID: 001_progress_tables
Revises: None
Create Date: 2026-10-12
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progress_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(64) PRIMARY KEY,
            email VARCHAR(320) UNIQUE,
            name VARCHAR(128),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Topics ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS topics (
            id VARCHAR(36) PRIMARY KEY,
            name VARCHAR(200) NOT NULL,
            description TEXT,
            parent_id VARCHAR(36) REFERENCES topics(id),
            "order" INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- User Progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progress (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            topic_id VARCHAR(36) NOT NULL REFERENCES topics(id) ON DELETE CASCADE,
            proficiency DOUBLE PRECISION NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            last_activity TIMESTAMPTZ,
            CONSTRAINT uq_user_progress_user_topic UNIQUE (user_id, topic_id)
        )
    """)

    # --- User Assessments ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_assessments (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            assessment_id VARCHAR(36) NOT NULL,
            score DOUBLE PRECISION NOT NULL,
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_assessments_user
        ON user_assessments(user_id, completed_at)
    """)

    # --- User Activities ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_activities (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_type VARCHAR(32) NOT NULL,
            topic_id VARCHAR(36) REFERENCES topics(id),
            activity_data JSONB NOT NULL DEFAULT '{}',
            duration INTEGER,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_activities_user_time
        ON user_activities(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_activities_user_type
        ON user_activities(user_id, activity_type)
    """)

    # --- User Goals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_goals (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(200) NOT NULL,
            description TEXT NOT NULL,
            target_value INTEGER NOT NULL CHECK (target_value >= 1),
            current_value INTEGER NOT NULL DEFAULT 0 CHECK (current_value >= 0),
            goal_type VARCHAR(16) NOT NULL,
            topic_id VARCHAR(36) REFERENCES topics(id),
            start_date TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            end_date TIMESTAMPTZ,
            completed BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_goals_open
        ON user_goals(user_id)
        WHERE completed = false
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_goals CASCADE")
    op.execute("DROP TABLE IF EXISTS user_activities CASCADE")
    op.execute("DROP TABLE IF EXISTS user_assessments CASCADE")
    op.execute("DROP TABLE IF EXISTS user_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS topics CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
