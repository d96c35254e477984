"""Users, settings and authentication tokens.

Revision ID: 001_users_and_auth
Revises:
Create Date: 2026-09-14
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_users_and_auth"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            email VARCHAR(320) UNIQUE NOT NULL,
            email_verified BOOLEAN NOT NULL DEFAULT false,
            password_hash VARCHAR(256) NOT NULL,
            display_name VARCHAR(64) NOT NULL,
            display_name_normalized VARCHAR(64) UNIQUE NOT NULL,
            avatar_url TEXT,
            bio VARCHAR(280),
            fitness_level VARCHAR(16) NOT NULL DEFAULT 'beginner',
            primary_goal VARCHAR(32) NOT NULL DEFAULT 'general_fitness',
            units VARCHAR(8) NOT NULL DEFAULT 'metric',
            timezone VARCHAR(64) NOT NULL DEFAULT 'UTC',
            is_active BOOLEAN NOT NULL DEFAULT true,
            is_banned BOOLEAN NOT NULL DEFAULT false,
            last_login TIMESTAMPTZ,
            login_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_settings (
            user_id BIGINT PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            notifications JSONB NOT NULL DEFAULT '{}',
            privacy JSONB NOT NULL DEFAULT '{}',
            display JSONB NOT NULL DEFAULT '{}',
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Refresh tokens (hashed, rotated, revocable) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS refresh_tokens (
            id UUID PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash VARCHAR(128) UNIQUE NOT NULL,
            issued_at TIMESTAMPTZ NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            revoked_at TIMESTAMPTZ,
            ip_address VARCHAR(45),
            user_agent VARCHAR(512),
            is_revoked BOOLEAN NOT NULL DEFAULT false,
            replaced_by UUID
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_refresh_tokens_user_live
        ON refresh_tokens(user_id)
        WHERE is_revoked = false
    """)

    # --- Single-use tokens ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS email_verification_tokens (
            id UUID PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash VARCHAR(128) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            used_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_email_verification_hash
        ON email_verification_tokens(token_hash)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS password_reset_tokens (
            id UUID PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash VARCHAR(128) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            used_at TIMESTAMPTZ,
            ip_address VARCHAR(45)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_password_reset_hash
        ON password_reset_tokens(token_hash)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS password_reset_tokens CASCADE")
    op.execute("DROP TABLE IF EXISTS email_verification_tokens CASCADE")
    op.execute("DROP TABLE IF EXISTS refresh_tokens CASCADE")
    op.execute("DROP TABLE IF EXISTS user_settings CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
