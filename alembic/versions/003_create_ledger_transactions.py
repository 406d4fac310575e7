"""003: create ledger_transactions table

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ledger_transactions (
            transaction_id  VARCHAR(128)    PRIMARY KEY,
            card_id         VARCHAR(64)     NOT NULL,
            operation       VARCHAR(30)     NOT NULL,
            reference_id    VARCHAR(64),
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_ledger_transactions_operation CHECK (
                operation IN (
                    'DEPOSIT', 'CAPTURE',
                    'WITHDRAWAL_REQUEST', 'WITHDRAWAL_FINALIZE', 'WITHDRAWAL_REVERSE'
                )
            )
        );
    """)
    op.execute("CREATE INDEX idx_ledger_transactions_card ON ledger_transactions (card_id, created_at);")
    op.execute("""
        CREATE TRIGGER trg_ledger_transactions_append_only
            BEFORE UPDATE OR DELETE ON ledger_transactions
            FOR EACH ROW EXECUTE FUNCTION fn_reject_mutation();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_transactions CASCADE;")
