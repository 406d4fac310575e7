"""004: create ledger_entries table

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ledger_entries (
            id              BIGSERIAL       PRIMARY KEY,
            account_id      UUID            NOT NULL REFERENCES ledger_accounts (id),
            transaction_id  VARCHAR(128)    NOT NULL REFERENCES ledger_transactions (transaction_id),
            amount          BIGINT          NOT NULL,
            kind            VARCHAR(30)     NOT NULL,
            metadata        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_ledger_entries_kind CHECK (
                kind IN (
                    'DEPOSIT', 'CAPTURE',
                    'WITHDRAWAL_RESERVE', 'WITHDRAWAL_FINALIZE', 'WITHDRAWAL_RELEASE',
                    'REVERSAL'
                )
            ),
            CONSTRAINT ck_ledger_entries_amount_ne_0 CHECK (amount <> 0),
            CONSTRAINT uq_ledger_entries_txn_account_kind UNIQUE (transaction_id, account_id, kind)
        );
    """)
    op.execute("CREATE INDEX idx_ledger_entries_account ON ledger_entries (account_id, id);")
    op.execute("""
        CREATE TRIGGER trg_ledger_entries_append_only
            BEFORE UPDATE OR DELETE ON ledger_entries
            FOR EACH ROW EXECUTE FUNCTION fn_reject_mutation();
    """)
    op.execute("COMMENT ON TABLE ledger_entries IS 'Append-only signed movements, minor units (cents)';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_entries CASCADE;")
