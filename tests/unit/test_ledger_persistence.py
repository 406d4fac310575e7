"""Unit tests for LedgerRepository using MagicMock AsyncSession."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import DBAPIError

from src.pw_common.errors import CardBusyError, DuplicateTransactionError, InternalError
from src.pw_ledger.domain.models import (
    CardAuthHold,
    LedgerTransaction,
    NewEntry,
    WithdrawalRequest,
)
from src.pw_ledger.infrastructure.persistence import LedgerRepository


def _result(one=None, rows=None) -> MagicMock:
    result = MagicMock()
    result.fetchone.return_value = one
    result.fetchall.return_value = rows or []
    return result


def _account_row(**kwargs) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", "acc-1")
    row.card_id = kwargs.get("card_id", "card-1")
    row.kind = kwargs.get("kind", "POOL")
    row.user_id = kwargs.get("user_id")
    row.currency = "USD"
    row.created_at = datetime.now(UTC)
    return row


def _entry_row(**kwargs) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", 1)
    row.account_id = kwargs.get("account_id", "acc-1")
    row.transaction_id = kwargs.get("transaction_id", "tx1")
    row.amount = kwargs.get("amount", 100)
    row.kind = kwargs.get("kind", "DEPOSIT")
    row.created_at = datetime.now(UTC)
    row.metadata = kwargs.get("metadata", {})
    return row


def _txn_row(**kwargs) -> MagicMock:
    row = MagicMock()
    row.transaction_id = kwargs.get("transaction_id", "tx1")
    row.card_id = kwargs.get("card_id", "card-1")
    row.operation = kwargs.get("operation", "DEPOSIT")
    row.reference_id = kwargs.get("reference_id")
    row.created_at = datetime.now(UTC)
    return row


def _hold_row(**kwargs) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", "hold_1")
    row.provider = "mock"
    row.provider_auth_id = kwargs.get("provider_auth_id", "auth-1")
    row.card_id = "card-1"
    row.user_id = "alice"
    row.amount = 700
    row.currency = "USD"
    row.status = kwargs.get("status", "PENDING")
    row.metadata = kwargs.get("metadata", '{"provider_event_id": "evt-1"}')
    row.created_at = datetime.now(UTC)
    row.cleared_at = kwargs.get("cleared_at")
    row.reversed_at = None
    return row


def _withdrawal_row(**kwargs) -> MagicMock:
    row = MagicMock()
    row.id = kwargs.get("id", "wd_1")
    row.card_id = "card-1"
    row.user_id = "alice"
    row.amount = 400
    row.status = kwargs.get("status", "PENDING")
    row.request_transaction_id = "tx3"
    row.finalize_transaction_id = kwargs.get("finalize_transaction_id")
    row.reverse_transaction_id = None
    row.created_at = datetime.now(UTC)
    row.resolved_at = kwargs.get("resolved_at")
    return row


@pytest.fixture
def db():
    return MagicMock()


class TestLockCard:
    async def test_sets_timeout_then_takes_advisory_lock(self, db):
        db.execute = AsyncMock(return_value=_result())
        await LedgerRepository(lock_timeout_seconds=2.5).lock_card(db, "card-1")

        assert db.execute.await_count == 2
        timeout_params = db.execute.call_args_list[0][0][1]
        lock_params = db.execute.call_args_list[1][0][1]
        assert timeout_params == {"timeout": "2500ms"}
        assert lock_params == {"card_id": "card-1"}
        assert "pg_advisory_xact_lock" in str(db.execute.call_args_list[1][0][0])

    async def test_lock_timeout_becomes_card_busy(self, db):
        orig = Exception("canceling statement due to lock timeout")
        orig.sqlstate = "55P03"
        db.execute = AsyncMock(
            side_effect=[_result(), DBAPIError("SELECT pg_advisory_xact_lock", {}, orig)]
        )
        with pytest.raises(CardBusyError):
            await LedgerRepository().lock_card(db, "card-1")

    async def test_other_db_errors_propagate(self, db):
        orig = Exception("connection reset")
        db.execute = AsyncMock(side_effect=[_result(), DBAPIError("SELECT", {}, orig)])
        with pytest.raises(DBAPIError):
            await LedgerRepository().lock_card(db, "card-1")


class TestAccounts:
    async def test_get_or_create_inserts_then_reads(self, db):
        db.execute = AsyncMock(side_effect=[_result(), _result(one=_account_row(id="acc-9"))])
        account = await LedgerRepository().get_or_create_account(db, "card-1", "POOL", None, "USD")

        assert account.id == "acc-9"
        assert account.kind == "POOL"
        assert db.execute.await_count == 2

    async def test_get_or_create_missing_row_is_internal_error(self, db):
        db.execute = AsyncMock(side_effect=[_result(), _result(one=None)])
        with pytest.raises(InternalError):
            await LedgerRepository().get_or_create_account(db, "card-1", "POOL", None, "USD")

    async def test_list_card_accounts(self, db):
        rows = [_account_row(id="p"), _account_row(id="a", kind="MEMBER_EQUITY", user_id="alice")]
        db.execute = AsyncMock(return_value=_result(rows=rows))
        accounts = await LedgerRepository().list_card_accounts(db, "card-1")
        assert [a.id for a in accounts] == ["p", "a"]
        assert accounts[1].user_id == "alice"


class TestTransactions:
    async def test_insert_returns_row(self, db):
        db.execute = AsyncMock(return_value=_result(one=_txn_row()))
        txn = await LedgerRepository().insert_transaction(
            db, LedgerTransaction("tx1", "card-1", "DEPOSIT")
        )
        assert txn.transaction_id == "tx1"
        assert txn.created_at is not None

    async def test_conflict_raises_duplicate(self, db):
        db.execute = AsyncMock(return_value=_result(one=None))
        with pytest.raises(DuplicateTransactionError) as exc_info:
            await LedgerRepository().insert_transaction(
                db, LedgerTransaction("tx1", "card-1", "DEPOSIT")
            )
        assert exc_info.value.transaction_id == "tx1"

    async def test_get_missing(self, db):
        db.execute = AsyncMock(return_value=_result(one=None))
        assert await LedgerRepository().get_transaction(db, "nope") is None


class TestEntries:
    async def test_insert_entries_serializes_metadata(self, db):
        db.execute = AsyncMock(
            side_effect=[
                _result(one=_entry_row(id=1, amount=100)),
                _result(one=_entry_row(id=2, account_id="acc-2", amount=100)),
            ]
        )
        entries = await LedgerRepository().insert_entries(
            db,
            "tx1",
            [
                NewEntry("acc-1", 100, "DEPOSIT", {"source": "ach"}),
                NewEntry("acc-2", 100, "DEPOSIT"),
            ],
        )
        assert [e.id for e in entries] == [1, 2]
        first_params = db.execute.call_args_list[0][0][1]
        assert first_params["metadata"] == '{"source": "ach"}'
        assert first_params["transaction_id"] == "tx1"

    async def test_metadata_decoded_from_json_text(self, db):
        row = _entry_row(metadata='{"withdrawal_id": "wd_1"}')
        db.execute = AsyncMock(return_value=_result(rows=[row]))
        entries = await LedgerRepository().list_transaction_entries(db, "tx1")
        assert entries[0].metadata == {"withdrawal_id": "wd_1"}

    async def test_null_metadata(self, db):
        db.execute = AsyncMock(return_value=_result(rows=[_entry_row(metadata=None)]))
        entries = await LedgerRepository().list_card_entries(db, "card-1")
        assert entries[0].metadata == {}


class TestWithdrawals:
    async def test_create(self, db):
        db.execute = AsyncMock(return_value=_result(one=_withdrawal_row()))
        stored = await LedgerRepository().create_withdrawal(
            db, WithdrawalRequest("wd_1", "card-1", "alice", 400, "PENDING", "tx3")
        )
        assert stored.status == "PENDING"
        assert stored.created_at is not None

    async def test_update_missing_is_internal_error(self, db):
        db.execute = AsyncMock(return_value=_result(one=None))
        with pytest.raises(InternalError):
            await LedgerRepository().update_withdrawal(
                db, WithdrawalRequest("wd_1", "card-1", "alice", 400, "FINALIZED", "tx3")
            )

    async def test_list_passes_status_filter(self, db):
        db.execute = AsyncMock(return_value=_result(rows=[_withdrawal_row()]))
        items = await LedgerRepository().list_withdrawals(db, "card-1", "PENDING")
        assert len(items) == 1
        assert db.execute.call_args[0][1] == {"card_id": "card-1", "status": "PENDING"}


_HOLD = CardAuthHold("hold_1", "mock", "auth-1", "card-1", "alice", 700, "USD", "PENDING")


class TestAuthHolds:
    async def test_insert_returns_row(self, db):
        db.execute = AsyncMock(return_value=_result(one=_hold_row()))
        stored = await LedgerRepository().insert_auth_hold(db, _HOLD)
        assert stored.status == "PENDING"
        assert stored.metadata == {"provider_event_id": "evt-1"}
        params = db.execute.call_args[0][1]
        assert params["provider_auth_id"] == "auth-1"
        assert params["metadata"] == "{}"

    async def test_insert_conflict_returns_none(self, db):
        db.execute = AsyncMock(return_value=_result(one=None))
        assert await LedgerRepository().insert_auth_hold(db, _HOLD) is None

    async def test_get_by_provider_auth_id(self, db):
        db.execute = AsyncMock(return_value=_result(one=_hold_row()))
        hold = await LedgerRepository().get_auth_hold(db, "mock", "auth-1")
        assert hold.id == "hold_1"
        assert db.execute.call_args[0][1] == {"provider": "mock", "provider_auth_id": "auth-1"}

    async def test_update_returns_cleared(self, db):
        cleared_at = datetime.now(UTC)
        db.execute = AsyncMock(
            return_value=_result(one=_hold_row(status="CLEARED", cleared_at=cleared_at))
        )
        updated = await LedgerRepository().update_auth_hold(db, _HOLD)
        assert updated.status == "CLEARED"
        assert updated.cleared_at == cleared_at

    async def test_update_missing_is_internal_error(self, db):
        db.execute = AsyncMock(return_value=_result(one=None))
        with pytest.raises(InternalError):
            await LedgerRepository().update_auth_hold(db, _HOLD)

    async def test_list_passes_status_filter(self, db):
        db.execute = AsyncMock(return_value=_result(rows=[_hold_row(), _hold_row(id="hold_2")]))
        holds = await LedgerRepository().list_auth_holds(db, "card-1", "PENDING")
        assert [h.id for h in holds] == ["hold_1", "hold_2"]
        assert db.execute.call_args[0][1] == {"card_id": "card-1", "status": "PENDING"}
