"""LedgerRepository: PostgreSQL implementation of LedgerRepositoryProtocol.

Ledger entries and transactions are INSERT-only. Idempotency rests on the
ledger_transactions primary key: INSERT ... ON CONFLICT DO NOTHING returning
0 rows means the transaction_id is already committed.

Transaction ownership: the CALLER (application service) commits or rolls back.
Per-card serialization uses pg_advisory_xact_lock, released at commit/rollback,
with a transaction-local lock_timeout so a hot card fails fast instead of
blocking indefinitely.
"""

import json
import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.errors import CardBusyError, DuplicateTransactionError, InternalError
from src.pw_ledger.domain.models import (
    Account,
    CardAuthHold,
    Entry,
    LedgerTransaction,
    NewEntry,
    WithdrawalRequest,
)

logger = logging.getLogger(__name__)

_LOCK_NOT_AVAILABLE = "55P03"

# ---------------------------------------------------------------------------
# SQL: serialization and snapshots
# ---------------------------------------------------------------------------

_SET_LOCK_TIMEOUT_SQL = text("SELECT set_config('lock_timeout', :timeout, true)")

_CARD_LOCK_SQL = text("SELECT pg_advisory_xact_lock(hashtextextended(:card_id, 0))")

_SNAPSHOT_SQL = text("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ ONLY")

# ---------------------------------------------------------------------------
# SQL: accounts
# ---------------------------------------------------------------------------

_INSERT_ACCOUNT_SQL = text("""
    INSERT INTO ledger_accounts (card_id, kind, user_id, currency)
    VALUES (:card_id, :kind, :user_id, :currency)
    ON CONFLICT DO NOTHING
""")

_FIND_ACCOUNT_SQL = text("""
    SELECT id, card_id, kind, user_id, currency, created_at
    FROM ledger_accounts
    WHERE card_id = :card_id
      AND kind = :kind
      AND user_id IS NOT DISTINCT FROM CAST(:user_id AS VARCHAR)
""")

_LIST_CARD_ACCOUNTS_SQL = text("""
    SELECT id, card_id, kind, user_id, currency, created_at
    FROM ledger_accounts
    WHERE card_id = :card_id
    ORDER BY created_at ASC, id ASC
""")

# ---------------------------------------------------------------------------
# SQL: transactions and entries
# ---------------------------------------------------------------------------

_GET_TRANSACTION_SQL = text("""
    SELECT transaction_id, card_id, operation, reference_id, created_at
    FROM ledger_transactions
    WHERE transaction_id = :transaction_id
""")

_INSERT_TRANSACTION_SQL = text("""
    INSERT INTO ledger_transactions (transaction_id, card_id, operation, reference_id)
    VALUES (:transaction_id, :card_id, :operation, :reference_id)
    ON CONFLICT (transaction_id) DO NOTHING
    RETURNING transaction_id, card_id, operation, reference_id, created_at
""")

_INSERT_ENTRY_SQL = text("""
    INSERT INTO ledger_entries (account_id, transaction_id, amount, kind, metadata)
    VALUES (:account_id, :transaction_id, :amount, :kind, CAST(:metadata AS JSONB))
    RETURNING id, account_id, transaction_id, amount, kind, created_at, metadata
""")

_LIST_TRANSACTION_ENTRIES_SQL = text("""
    SELECT id, account_id, transaction_id, amount, kind, created_at, metadata
    FROM ledger_entries
    WHERE transaction_id = :transaction_id
    ORDER BY id ASC
""")

_LIST_CARD_ENTRIES_SQL = text("""
    SELECT e.id, e.account_id, e.transaction_id, e.amount, e.kind, e.created_at, e.metadata
    FROM ledger_entries e
    JOIN ledger_accounts a ON a.id = e.account_id
    WHERE a.card_id = :card_id
    ORDER BY e.id ASC
""")

# ---------------------------------------------------------------------------
# SQL: withdrawal requests
# ---------------------------------------------------------------------------

_WITHDRAWAL_COLUMNS = """
    id, card_id, user_id, amount, status,
    request_transaction_id, finalize_transaction_id, reverse_transaction_id,
    created_at, resolved_at
"""

_INSERT_WITHDRAWAL_SQL = text(f"""
    INSERT INTO withdrawal_requests
        (id, card_id, user_id, amount, status, request_transaction_id)
    VALUES
        (:id, :card_id, :user_id, :amount, :status, :request_transaction_id)
    RETURNING {_WITHDRAWAL_COLUMNS}
""")

_GET_WITHDRAWAL_SQL = text(f"""
    SELECT {_WITHDRAWAL_COLUMNS}
    FROM withdrawal_requests
    WHERE id = :id
""")

_UPDATE_WITHDRAWAL_SQL = text(f"""
    UPDATE withdrawal_requests
    SET status = :status,
        finalize_transaction_id = :finalize_transaction_id,
        reverse_transaction_id = :reverse_transaction_id,
        resolved_at = :resolved_at
    WHERE id = :id
    RETURNING {_WITHDRAWAL_COLUMNS}
""")

_LIST_WITHDRAWALS_SQL = text(f"""
    SELECT {_WITHDRAWAL_COLUMNS}
    FROM withdrawal_requests
    WHERE card_id = :card_id
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
    ORDER BY created_at ASC, id ASC
""")


# ---------------------------------------------------------------------------
# SQL: card authorization holds
# ---------------------------------------------------------------------------

_HOLD_COLUMNS = """
    id, provider, provider_auth_id, card_id, user_id, amount, currency, status,
    metadata, created_at, cleared_at, reversed_at
"""

_INSERT_HOLD_SQL = text(f"""
    INSERT INTO card_auth_holds
        (id, provider, provider_auth_id, card_id, user_id, amount, currency, status, metadata)
    VALUES
        (:id, :provider, :provider_auth_id, :card_id, :user_id, :amount, :currency, :status,
         CAST(:metadata AS JSONB))
    ON CONFLICT (provider, provider_auth_id) DO NOTHING
    RETURNING {_HOLD_COLUMNS}
""")

_GET_HOLD_SQL = text(f"""
    SELECT {_HOLD_COLUMNS}
    FROM card_auth_holds
    WHERE provider = :provider AND provider_auth_id = :provider_auth_id
""")

_UPDATE_HOLD_SQL = text(f"""
    UPDATE card_auth_holds
    SET status = :status,
        cleared_at = :cleared_at,
        reversed_at = :reversed_at
    WHERE id = :id
    RETURNING {_HOLD_COLUMNS}
""")

_LIST_HOLDS_SQL = text(f"""
    SELECT {_HOLD_COLUMNS}
    FROM card_auth_holds
    WHERE card_id = :card_id
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
    ORDER BY created_at ASC, id ASC
""")


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------

def _row_to_account(row: Any) -> Account:
    return Account(
        id=str(row.id),
        card_id=row.card_id,
        kind=row.kind,
        user_id=row.user_id,
        currency=row.currency,
        created_at=row.created_at,
    )


def _decode_metadata(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, str):
        return json.loads(raw)
    return dict(raw)


def _row_to_entry(row: Any) -> Entry:
    return Entry(
        id=row.id,
        account_id=str(row.account_id),
        transaction_id=row.transaction_id,
        amount=row.amount,
        kind=row.kind,
        created_at=row.created_at,
        metadata=_decode_metadata(row.metadata),
    )


def _row_to_transaction(row: Any) -> LedgerTransaction:
    return LedgerTransaction(
        transaction_id=row.transaction_id,
        card_id=row.card_id,
        operation=row.operation,
        reference_id=row.reference_id,
        created_at=row.created_at,
    )


def _row_to_withdrawal(row: Any) -> WithdrawalRequest:
    return WithdrawalRequest(
        id=row.id,
        card_id=row.card_id,
        user_id=row.user_id,
        amount=row.amount,
        status=row.status,
        request_transaction_id=row.request_transaction_id,
        finalize_transaction_id=row.finalize_transaction_id,
        reverse_transaction_id=row.reverse_transaction_id,
        created_at=row.created_at,
        resolved_at=row.resolved_at,
    )


def _row_to_hold(row: Any) -> CardAuthHold:
    return CardAuthHold(
        id=row.id,
        provider=row.provider,
        provider_auth_id=row.provider_auth_id,
        card_id=row.card_id,
        user_id=row.user_id,
        amount=row.amount,
        currency=row.currency,
        status=row.status,
        metadata=_decode_metadata(row.metadata),
        created_at=row.created_at,
        cleared_at=row.cleared_at,
        reversed_at=row.reversed_at,
    )


def _is_lock_timeout(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == _LOCK_NOT_AVAILABLE


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class LedgerRepository:
    """Concrete repository: raw SQL, every write inside the caller's transaction."""

    def __init__(self, lock_timeout_seconds: float = 5.0) -> None:
        self._lock_timeout_seconds = lock_timeout_seconds

    async def lock_card(self, db: AsyncSession, card_id: str) -> None:
        timeout_ms = f"{int(self._lock_timeout_seconds * 1000)}ms"
        await db.execute(_SET_LOCK_TIMEOUT_SQL, {"timeout": timeout_ms})
        try:
            await db.execute(_CARD_LOCK_SQL, {"card_id": card_id})
        except DBAPIError as exc:
            if _is_lock_timeout(exc):
                logger.warning("Advisory lock timeout: card=%s", card_id)
                raise CardBusyError(card_id, self._lock_timeout_seconds) from exc
            raise

    async def begin_snapshot(self, db: AsyncSession) -> None:
        # Must be the first statement of the transaction
        await db.execute(_SNAPSHOT_SQL)

    async def get_or_create_account(
        self,
        db: AsyncSession,
        card_id: str,
        kind: str,
        user_id: str | None,
        currency: str,
    ) -> Account:
        await db.execute(
            _INSERT_ACCOUNT_SQL,
            {"card_id": card_id, "kind": kind, "user_id": user_id, "currency": currency},
        )
        account = await self.find_account(db, card_id, kind, user_id)
        if account is None:
            raise InternalError(f"Account upsert returned no row for card {card_id}")
        return account

    async def find_account(
        self, db: AsyncSession, card_id: str, kind: str, user_id: str | None
    ) -> Account | None:
        result = await db.execute(
            _FIND_ACCOUNT_SQL, {"card_id": card_id, "kind": kind, "user_id": user_id}
        )
        row = result.fetchone()
        return _row_to_account(row) if row else None

    async def list_card_accounts(self, db: AsyncSession, card_id: str) -> list[Account]:
        result = await db.execute(_LIST_CARD_ACCOUNTS_SQL, {"card_id": card_id})
        return [_row_to_account(row) for row in result.fetchall()]

    async def get_transaction(
        self, db: AsyncSession, transaction_id: str
    ) -> LedgerTransaction | None:
        result = await db.execute(_GET_TRANSACTION_SQL, {"transaction_id": transaction_id})
        row = result.fetchone()
        return _row_to_transaction(row) if row else None

    async def insert_transaction(
        self, db: AsyncSession, txn: LedgerTransaction
    ) -> LedgerTransaction:
        result = await db.execute(
            _INSERT_TRANSACTION_SQL,
            {
                "transaction_id": txn.transaction_id,
                "card_id": txn.card_id,
                "operation": txn.operation,
                "reference_id": txn.reference_id,
            },
        )
        row = result.fetchone()
        if row is None:
            raise DuplicateTransactionError(txn.transaction_id)
        return _row_to_transaction(row)

    async def insert_entries(
        self, db: AsyncSession, transaction_id: str, entries: list[NewEntry]
    ) -> list[Entry]:
        created: list[Entry] = []
        for e in entries:
            result = await db.execute(
                _INSERT_ENTRY_SQL,
                {
                    "account_id": e.account_id,
                    "transaction_id": transaction_id,
                    "amount": e.amount,
                    "kind": e.kind,
                    "metadata": json.dumps(e.metadata),
                },
            )
            row = result.fetchone()
            if row is None:
                raise InternalError("Ledger insert returned no rows")
            created.append(_row_to_entry(row))
        return created

    async def list_transaction_entries(
        self, db: AsyncSession, transaction_id: str
    ) -> list[Entry]:
        result = await db.execute(
            _LIST_TRANSACTION_ENTRIES_SQL, {"transaction_id": transaction_id}
        )
        return [_row_to_entry(row) for row in result.fetchall()]

    async def list_card_entries(self, db: AsyncSession, card_id: str) -> list[Entry]:
        result = await db.execute(_LIST_CARD_ENTRIES_SQL, {"card_id": card_id})
        return [_row_to_entry(row) for row in result.fetchall()]

    async def create_withdrawal(
        self, db: AsyncSession, request: WithdrawalRequest
    ) -> WithdrawalRequest:
        result = await db.execute(
            _INSERT_WITHDRAWAL_SQL,
            {
                "id": request.id,
                "card_id": request.card_id,
                "user_id": request.user_id,
                "amount": request.amount,
                "status": request.status,
                "request_transaction_id": request.request_transaction_id,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("Withdrawal insert returned no rows")
        return _row_to_withdrawal(row)

    async def get_withdrawal(
        self, db: AsyncSession, withdrawal_id: str
    ) -> WithdrawalRequest | None:
        result = await db.execute(_GET_WITHDRAWAL_SQL, {"id": withdrawal_id})
        row = result.fetchone()
        return _row_to_withdrawal(row) if row else None

    async def update_withdrawal(
        self, db: AsyncSession, request: WithdrawalRequest
    ) -> WithdrawalRequest:
        result = await db.execute(
            _UPDATE_WITHDRAWAL_SQL,
            {
                "id": request.id,
                "status": request.status,
                "finalize_transaction_id": request.finalize_transaction_id,
                "reverse_transaction_id": request.reverse_transaction_id,
                "resolved_at": request.resolved_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Withdrawal {request.id} vanished during update")
        return _row_to_withdrawal(row)

    async def list_withdrawals(
        self, db: AsyncSession, card_id: str, status: str | None
    ) -> list[WithdrawalRequest]:
        result = await db.execute(
            _LIST_WITHDRAWALS_SQL, {"card_id": card_id, "status": status}
        )
        return [_row_to_withdrawal(row) for row in result.fetchall()]

    async def insert_auth_hold(
        self, db: AsyncSession, hold: CardAuthHold
    ) -> CardAuthHold | None:
        result = await db.execute(
            _INSERT_HOLD_SQL,
            {
                "id": hold.id,
                "provider": hold.provider,
                "provider_auth_id": hold.provider_auth_id,
                "card_id": hold.card_id,
                "user_id": hold.user_id,
                "amount": hold.amount,
                "currency": hold.currency,
                "status": hold.status,
                "metadata": json.dumps(hold.metadata),
            },
        )
        row = result.fetchone()
        return _row_to_hold(row) if row else None

    async def get_auth_hold(
        self, db: AsyncSession, provider: str, provider_auth_id: str
    ) -> CardAuthHold | None:
        result = await db.execute(
            _GET_HOLD_SQL, {"provider": provider, "provider_auth_id": provider_auth_id}
        )
        row = result.fetchone()
        return _row_to_hold(row) if row else None

    async def update_auth_hold(self, db: AsyncSession, hold: CardAuthHold) -> CardAuthHold:
        result = await db.execute(
            _UPDATE_HOLD_SQL,
            {
                "id": hold.id,
                "status": hold.status,
                "cleared_at": hold.cleared_at,
                "reversed_at": hold.reversed_at,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError(f"Auth hold {hold.id} vanished during update")
        return _row_to_hold(row)

    async def list_auth_holds(
        self, db: AsyncSession, card_id: str, status: str | None
    ) -> list[CardAuthHold]:
        result = await db.execute(_LIST_HOLDS_SQL, {"card_id": card_id, "status": status})
        return [_row_to_hold(row) for row in result.fetchall()]
