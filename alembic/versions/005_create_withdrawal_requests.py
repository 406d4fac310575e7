"""005: create withdrawal_requests table

Revision ID: 005
Revises: 004
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE withdrawal_requests (
            id                      VARCHAR(64)     PRIMARY KEY,
            card_id                 VARCHAR(64)     NOT NULL,
            user_id                 VARCHAR(64)     NOT NULL,
            amount                  BIGINT          NOT NULL,
            status                  VARCHAR(20)     NOT NULL DEFAULT 'PENDING',
            request_transaction_id  VARCHAR(128)    NOT NULL
                REFERENCES ledger_transactions (transaction_id),
            finalize_transaction_id VARCHAR(128)
                REFERENCES ledger_transactions (transaction_id),
            reverse_transaction_id  VARCHAR(128)
                REFERENCES ledger_transactions (transaction_id),
            created_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            resolved_at             TIMESTAMPTZ,
            CONSTRAINT ck_withdrawal_amount_gt_0 CHECK (amount > 0),
            CONSTRAINT ck_withdrawal_status CHECK (status IN ('PENDING', 'FINALIZED', 'REVERSED')),
            CONSTRAINT ck_withdrawal_resolved CHECK (
                (status = 'PENDING') = (resolved_at IS NULL)
            )
        );
    """)
    op.execute("""
        CREATE INDEX idx_withdrawal_pending
        ON withdrawal_requests (card_id, user_id)
        WHERE status = 'PENDING';
    """)
    op.execute("""
        CREATE TRIGGER trg_withdrawal_requests_updated_at
            BEFORE UPDATE ON withdrawal_requests
            FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS withdrawal_requests CASCADE;")
