"""Activity templates, sessions, routes and the gamification engine.

Revision ID: 002_activities_and_gamification
Revises: 001_users_and_auth
Create Date: 2026-09-14
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_activities_and_gamification"
down_revision: str | None = "001_users_and_auth"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Activities ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activity_templates (
            id BIGSERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            activity_type VARCHAR(32) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            difficulty VARCHAR(16) NOT NULL DEFAULT 'moderate',
            calories_per_hour INTEGER NOT NULL,
            default_duration_minutes INTEGER NOT NULL DEFAULT 30,
            tracks_route BOOLEAN NOT NULL DEFAULT false,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS activity_sessions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            template_id BIGINT REFERENCES activity_templates(id) ON DELETE SET NULL,
            activity_type VARCHAR(32) NOT NULL,
            title VARCHAR(128),
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            started_at TIMESTAMPTZ NOT NULL,
            ended_at TIMESTAMPTZ,
            paused_at TIMESTAMPTZ,
            paused_seconds INTEGER NOT NULL DEFAULT 0,
            duration_seconds INTEGER NOT NULL DEFAULT 0,
            distance_m DOUBLE PRECISION NOT NULL DEFAULT 0,
            calories INTEGER NOT NULL DEFAULT 0,
            avg_heart_rate INTEGER,
            rating INTEGER,
            notes TEXT,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_activity_sessions_user_status
        ON activity_sessions(user_id, status)
    """)
    # At most one open session per user
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_activity_sessions_one_open
        ON activity_sessions(user_id)
        WHERE status IN ('active', 'paused')
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS route_points (
            id BIGSERIAL PRIMARY KEY,
            session_id BIGINT NOT NULL REFERENCES activity_sessions(id) ON DELETE CASCADE,
            sequence INTEGER NOT NULL,
            latitude DOUBLE PRECISION NOT NULL,
            longitude DOUBLE PRECISION NOT NULL,
            elevation_m DOUBLE PRECISION,
            recorded_at TIMESTAMPTZ NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_route_points_session_id
        ON route_points(session_id, sequence)
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id BIGSERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            xp_reward INTEGER NOT NULL DEFAULT 0,
            trigger_type VARCHAR(32) NOT NULL,
            trigger_config JSONB NOT NULL DEFAULT '{}',
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_badge_defs_trigger
        ON badge_definitions(trigger_type)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id BIGINT NOT NULL REFERENCES badge_definitions(id) ON DELETE CASCADE,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            metadata JSONB DEFAULT '{}',
            CONSTRAINT uq_user_badges_user_badge UNIQUE (user_id, badge_id)
        )
    """)

    # --- XP ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            description VARCHAR(256),
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_xp_ledger_user
        ON xp_ledger(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_gamification (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            total_xp BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            level_title VARCHAR(64) NOT NULL DEFAULT 'Couch Starter',
            badges_earned INTEGER NOT NULL DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_active_date DATE,
            total_sessions INTEGER NOT NULL DEFAULT 0,
            total_active_seconds BIGINT NOT NULL DEFAULT 0,
            total_distance_m DOUBLE PRECISION NOT NULL DEFAULT 0,
            total_calories BIGINT NOT NULL DEFAULT 0,
            goals_completed INTEGER NOT NULL DEFAULT 0,
            challenges_completed INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_gamification CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badge_definitions CASCADE")
    op.execute("DROP TABLE IF EXISTS route_points CASCADE")
    op.execute("DROP TABLE IF EXISTS activity_sessions CASCADE")
    op.execute("DROP TABLE IF EXISTS activity_templates CASCADE")
