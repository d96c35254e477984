"""Goals, challenges, clubs, social graph, notifications and health data.

Revision ID: 003_community_and_health
Revises: 002_activities_and_gamification
Create Date: 2026-09-15
"""

from collections.abc import Sequence

from alembic import op

revision: str = "003_community_and_health"
down_revision: str | None = "002_activities_and_gamification"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Goals ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS goals (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(128) NOT NULL,
            description TEXT,
            goal_type VARCHAR(16) NOT NULL,
            frequency VARCHAR(16) NOT NULL DEFAULT 'one_time',
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            target_value DOUBLE PRECISION NOT NULL CHECK (target_value > 0),
            current_value DOUBLE PRECISION NOT NULL DEFAULT 0,
            unit VARCHAR(16) NOT NULL,
            activity_type VARCHAR(32),
            is_adaptive BOOLEAN NOT NULL DEFAULT false,
            start_date TIMESTAMPTZ NOT NULL,
            end_date TIMESTAMPTZ NOT NULL,
            completed_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ,
            CHECK (end_date > start_date)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_goals_user_status ON goals(user_id, status)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS goal_progress_entries (
            id BIGSERIAL PRIMARY KEY,
            goal_id BIGINT NOT NULL REFERENCES goals(id) ON DELETE CASCADE,
            value DOUBLE PRECISION NOT NULL,
            delta DOUBLE PRECISION NOT NULL,
            source VARCHAR(16) NOT NULL DEFAULT 'manual',
            note VARCHAR(256),
            recorded_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_goal_progress_entries_goal_id ON goal_progress_entries(goal_id)")

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id BIGSERIAL PRIMARY KEY,
            creator_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title VARCHAR(128) NOT NULL,
            description TEXT,
            challenge_type VARCHAR(16) NOT NULL,
            target_value DOUBLE PRECISION NOT NULL CHECK (target_value > 0),
            unit VARCHAR(16) NOT NULL,
            activity_type VARCHAR(32),
            start_date TIMESTAMPTZ NOT NULL,
            end_date TIMESTAMPTZ NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT false,
            is_public BOOLEAN NOT NULL DEFAULT true,
            xp_reward INTEGER NOT NULL DEFAULT 250,
            max_participants INTEGER,
            participant_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (end_date > start_date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_challenges_active
        ON challenges(end_date)
        WHERE is_active = true
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_participants (
            id BIGSERIAL PRIMARY KEY,
            challenge_id BIGINT NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            progress DOUBLE PRECISION NOT NULL DEFAULT 0,
            is_completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_challenge_participants_challenge_user UNIQUE (challenge_id, user_id)
        )
    """)

    # --- Clubs ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS clubs (
            id BIGSERIAL PRIMARY KEY,
            name VARCHAR(64) NOT NULL,
            description TEXT,
            category VARCHAR(32) NOT NULL DEFAULT 'general',
            club_type VARCHAR(16) NOT NULL DEFAULT 'public',
            location VARCHAR(128),
            tags JSONB NOT NULL DEFAULT '[]',
            welcome_message VARCHAR(512),
            invite_code VARCHAR(8) UNIQUE NOT NULL,
            owner_user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            member_count INTEGER NOT NULL DEFAULT 1,
            max_members INTEGER NOT NULL DEFAULT 500,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_clubs_active_name
        ON clubs(LOWER(name))
        WHERE is_active = true
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS club_members (
            id BIGSERIAL PRIMARY KEY,
            club_id BIGINT NOT NULL REFERENCES clubs(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            role VARCHAR(16) NOT NULL DEFAULT 'member',
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_club_members_club_user UNIQUE (club_id, user_id)
        )
    """)

    # --- Social ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_connections (
            id BIGSERIAL PRIMARY KEY,
            follower_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            followed_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_connections_pair UNIQUE (follower_id, followed_id),
            CHECK (follower_id <> followed_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_user_connections_followed ON user_connections(followed_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS activity_shares (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            session_id BIGINT NOT NULL REFERENCES activity_sessions(id) ON DELETE CASCADE,
            caption VARCHAR(500),
            privacy VARCHAR(16) NOT NULL DEFAULT 'public',
            like_count INTEGER NOT NULL DEFAULT 0,
            comment_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_activity_shares_user
        ON activity_shares(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS share_likes (
            id BIGSERIAL PRIMARY KEY,
            share_id BIGINT NOT NULL REFERENCES activity_shares(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_share_likes_share_user UNIQUE (share_id, user_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS share_comments (
            id BIGSERIAL PRIMARY KEY,
            share_id BIGINT NOT NULL REFERENCES activity_shares(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            body VARCHAR(1000) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_share_comments_share_id ON share_comments(share_id)")

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id UUID PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(16) NOT NULL,
            subtype VARCHAR(32) NOT NULL,
            title VARCHAR(200) NOT NULL,
            description TEXT,
            link VARCHAR(512),
            metadata JSONB DEFAULT '{}',
            read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_notifications_user_read ON notifications(user_id, read)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_created
        ON notifications(user_id, created_at DESC)
    """)

    # --- Health data ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS health_data_sources (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            provider VARCHAR(32) NOT NULL,
            external_account_id VARCHAR(128),
            is_connected BOOLEAN NOT NULL DEFAULT true,
            connected_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            disconnected_at TIMESTAMPTZ,
            last_synced_at TIMESTAMPTZ,
            CONSTRAINT uq_health_sources_user_provider UNIQUE (user_id, provider)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS health_data_entries (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            provider VARCHAR(32) NOT NULL DEFAULT 'manual',
            data_type VARCHAR(32) NOT NULL,
            value DOUBLE PRECISION NOT NULL CHECK (value > 0),
            unit VARCHAR(16) NOT NULL,
            recorded_at TIMESTAMPTZ NOT NULL,
            notes VARCHAR(500),
            metadata JSONB DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_health_entries_user_type_time
        ON health_data_entries(user_id, data_type, recorded_at)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS health_data_entries CASCADE")
    op.execute("DROP TABLE IF EXISTS health_data_sources CASCADE")
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS share_comments CASCADE")
    op.execute("DROP TABLE IF EXISTS share_likes CASCADE")
    op.execute("DROP TABLE IF EXISTS activity_shares CASCADE")
    op.execute("DROP TABLE IF EXISTS user_connections CASCADE")
    op.execute("DROP TABLE IF EXISTS club_members CASCADE")
    op.execute("DROP TABLE IF EXISTS clubs CASCADE")
    op.execute("DROP TABLE IF EXISTS challenge_participants CASCADE")
    op.execute("DROP TABLE IF EXISTS challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS goal_progress_entries CASCADE")
    op.execute("DROP TABLE IF EXISTS goals CASCADE")
