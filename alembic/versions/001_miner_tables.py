"""Miner economy tables.

Creates app_settings (economy config lives under 'miner_config'),
miner_ledgers (one row per user) and miner_coin_transactions (journal).

Revision ID: 001_miner_tables
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_miner_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Settings ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS app_settings (
            key VARCHAR(64) PRIMARY KEY,
            value JSONB NOT NULL DEFAULT '{}'::jsonb,
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Ledgers ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS miner_ledgers (
            user_id VARCHAR(64) PRIMARY KEY,
            balance BIGINT NOT NULL DEFAULT 0,
            total_earned BIGINT NOT NULL DEFAULT 0,
            energy INTEGER NOT NULL DEFAULT 0,
            last_energy_update TIMESTAMPTZ NOT NULL,
            storage_level INTEGER NOT NULL DEFAULT 1,
            last_claim TIMESTAMPTZ NOT NULL,
            auto_collect_enabled BOOLEAN NOT NULL DEFAULT FALSE,
            auto_collect_level INTEGER NOT NULL DEFAULT 1,
            auto_collect_unlocked_level INTEGER NOT NULL DEFAULT 1,
            last_auto_collect TIMESTAMPTZ,
            bots_owned JSONB NOT NULL DEFAULT '{}'::jsonb,
            achievements JSONB NOT NULL DEFAULT '{}'::jsonb,
            daily_streak INTEGER NOT NULL DEFAULT 0,
            last_daily_claim DATE,
            total_daily_claims INTEGER NOT NULL DEFAULT 0,
            version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_miner_ledgers_balance_non_negative CHECK (balance >= 0),
            CONSTRAINT ck_miner_ledgers_energy_non_negative CHECK (energy >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_miner_ledgers_auto_collect
        ON miner_ledgers(user_id) WHERE auto_collect_enabled
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_miner_ledgers_total_earned
        ON miner_ledgers(total_earned DESC)
    """)

    # --- Coin journal ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS miner_coin_transactions (
            id BIGSERIAL PRIMARY KEY,
            user_id VARCHAR(64) NOT NULL REFERENCES miner_ledgers(user_id) ON DELETE CASCADE,
            amount BIGINT NOT NULL,
            source VARCHAR(32) NOT NULL,
            reason VARCHAR(256),
            idempotency_key VARCHAR(128) UNIQUE,
            balance_after BIGINT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_miner_coin_transactions_user
        ON miner_coin_transactions(user_id, created_at DESC)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS miner_coin_transactions")
    op.execute("DROP TABLE IF EXISTS miner_ledgers")
    op.execute("DROP TABLE IF EXISTS app_settings")
