"""Initial schema: alert pools, egg quota ledger, user alerts, notifications.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Community alert records (pools are derived from these) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS coin_alerts (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            coin_id VARCHAR(128) NOT NULL,
            alert_type VARCHAR(16) NOT NULL
                CHECK (alert_type IN ('migration', 'delisting', 'rebrand')),
            proof_link TEXT,
            eggs_staked INTEGER NOT NULL DEFAULT 0 CHECK (eggs_staked >= 0),
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'verified', 'rejected')),
            archived BOOLEAN NOT NULL DEFAULT false,
            admin_created BOOLEAN NOT NULL DEFAULT false,
            verified_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_coin_alerts_pool
        ON coin_alerts(coin_id, alert_type)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_coin_alerts_user
        ON coin_alerts(user_id, coin_id, alert_type)
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_coin_alerts_open_claim
        ON coin_alerts(user_id, coin_id, alert_type)
        WHERE NOT archived AND NOT admin_created
    """)

    # --- Egg balance and AI quota ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_ai_usage (
            user_id VARCHAR(64) PRIMARY KEY,
            eggs INTEGER NOT NULL DEFAULT 0 CHECK (eggs >= 0),
            tokens_used INTEGER NOT NULL DEFAULT 0,
            monthly_limit INTEGER NOT NULL DEFAULT 20,
            billing_plan VARCHAR(32) NOT NULL DEFAULT 'free',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Egg ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS egg_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            description VARCHAR(256),
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_egg_ledger_user_id
        ON egg_ledger(user_id)
    """)

    # --- Threshold watches ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_alerts (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            coin_id VARCHAR(128) NOT NULL,
            alert_type VARCHAR(32) NOT NULL,
            threshold_value DOUBLE PRECISION,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_alerts_user_coin_type UNIQUE (user_id, coin_id, alert_type)
        )
    """)

    # --- Notification log (delivery queue + cooldown history) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_log (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL,
            coin_id VARCHAR(128) NOT NULL,
            alert_type VARCHAR(32) NOT NULL,
            message TEXT NOT NULL,
            delivery_status VARCHAR(16) NOT NULL DEFAULT 'queued',
            delivery_data JSONB,
            sent_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            acknowledged_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notification_log_cooldown
        ON notification_log(user_id, coin_id, alert_type, sent_at)
    """)

    # --- Notification preferences ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_preferences (
            user_id VARCHAR(64) PRIMARY KEY,
            browser_push BOOLEAN NOT NULL DEFAULT true,
            email_alerts BOOLEAN NOT NULL DEFAULT false,
            in_app_only BOOLEAN NOT NULL DEFAULT false,
            notification_style VARCHAR(16) NOT NULL DEFAULT 'detailed',
            snooze_enabled BOOLEAN NOT NULL DEFAULT true,
            snooze_duration INTEGER NOT NULL DEFAULT 16,
            critical_only BOOLEAN NOT NULL DEFAULT false,
            important_and_critical BOOLEAN NOT NULL DEFAULT true,
            all_notifications BOOLEAN NOT NULL DEFAULT false,
            batch_portfolio_alerts BOOLEAN NOT NULL DEFAULT true,
            max_notifications_per_hour INTEGER NOT NULL DEFAULT 10,
            quiet_hours_enabled BOOLEAN NOT NULL DEFAULT false,
            quiet_start INTEGER NOT NULL DEFAULT 22,
            quiet_end INTEGER NOT NULL DEFAULT 8,
            sound_enabled BOOLEAN NOT NULL DEFAULT true,
            vibration_enabled BOOLEAN NOT NULL DEFAULT true,
            updated_at TIMESTAMPTZ
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notification_preferences CASCADE")
    op.execute("DROP TABLE IF EXISTS notification_log CASCADE")
    op.execute("DROP TABLE IF EXISTS user_alerts CASCADE")
    op.execute("DROP TABLE IF EXISTS egg_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_ai_usage CASCADE")
    op.execute("DROP TABLE IF EXISTS coin_alerts CASCADE")
