"""006: create card_auth_holds table

Revision ID: 006
Revises: 005
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE card_auth_holds (
            id                  VARCHAR(64)     PRIMARY KEY,
            provider            VARCHAR(32)     NOT NULL,
            provider_auth_id    VARCHAR(128)    NOT NULL,
            card_id             VARCHAR(64)     NOT NULL,
            user_id             VARCHAR(64)     NOT NULL,
            amount              BIGINT          NOT NULL,
            currency            VARCHAR(3)      NOT NULL,
            status              VARCHAR(20)     NOT NULL DEFAULT 'PENDING',
            metadata            JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            cleared_at          TIMESTAMPTZ,
            reversed_at         TIMESTAMPTZ,
            CONSTRAINT uq_hold_provider_auth UNIQUE (provider, provider_auth_id),
            CONSTRAINT ck_hold_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_hold_status CHECK (status IN ('PENDING', 'CLEARED', 'REVERSED')),
            CONSTRAINT ck_hold_cleared CHECK ((status = 'CLEARED') = (cleared_at IS NOT NULL)),
            CONSTRAINT ck_hold_reversed CHECK ((status = 'REVERSED') = (reversed_at IS NOT NULL))
        );
    """)
    op.execute("""
        CREATE INDEX idx_hold_pending
        ON card_auth_holds (card_id)
        WHERE status = 'PENDING';
    """)
    op.execute("""
        CREATE TRIGGER trg_card_auth_holds_updated_at
            BEFORE UPDATE ON card_auth_holds
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS card_auth_holds CASCADE;")
