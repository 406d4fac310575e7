"""002: create ledger_accounts table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ledger_accounts (
            id          UUID        PRIMARY KEY DEFAULT gen_random_uuid(),
            card_id     VARCHAR(64) NOT NULL,
            kind        VARCHAR(20) NOT NULL,
            user_id     VARCHAR(64),
            currency    CHAR(3)     NOT NULL,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT clock_timestamp(),
            CONSTRAINT ck_ledger_accounts_kind CHECK (kind IN ('POOL', 'MEMBER_EQUITY')),
            CONSTRAINT ck_ledger_accounts_owner CHECK (
                (kind = 'POOL' AND user_id IS NULL)
                OR (kind = 'MEMBER_EQUITY' AND user_id IS NOT NULL)
            )
        );
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_ledger_accounts_pool
        ON ledger_accounts (card_id)
        WHERE kind = 'POOL';
    """)
    op.execute("""
        CREATE UNIQUE INDEX uq_ledger_accounts_equity
        ON ledger_accounts (card_id, user_id)
        WHERE kind = 'MEMBER_EQUITY';
    """)
    op.execute("COMMENT ON TABLE ledger_accounts IS 'One POOL per card, one MEMBER_EQUITY per (card, user); never deleted';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_accounts CASCADE;")
