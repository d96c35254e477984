"""User-created activity templates and cheers.

Revision ID: 004_templates_and_cheers
Revises: 003_community_and_health
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "004_templates_and_cheers"
down_revision: str | None = "003_community_and_health"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        ALTER TABLE activity_templates
            ADD COLUMN IF NOT EXISTS created_by_id BIGINT REFERENCES users(id) ON DELETE SET NULL,
            ADD COLUMN IF NOT EXISTS created_at TIMESTAMPTZ
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS cheers (
            id BIGSERIAL PRIMARY KEY,
            sender_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            recipient_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            session_id BIGINT REFERENCES activity_sessions(id) ON DELETE SET NULL,
            cheer_type VARCHAR(16) NOT NULL,
            message VARCHAR(280),
            emoji_code VARCHAR(64),
            audio_url VARCHAR(512),
            power_up_xp INTEGER NOT NULL DEFAULT 0,
            is_live BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_cheers_recipient_created ON cheers (recipient_id, created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_cheers_sender_created ON cheers (sender_id, created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_cheers_session_id ON cheers (session_id)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS cheers CASCADE")
    op.execute("ALTER TABLE activity_templates DROP COLUMN IF EXISTS created_at")
    op.execute("ALTER TABLE activity_templates DROP COLUMN IF EXISTS created_by_id")
