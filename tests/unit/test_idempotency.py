"""apply_once: commit, replay, conflict and rollback paths."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from src.pw_common.errors import (
    DuplicateTransactionError,
    IdempotencyConflictError,
    InsufficientPoolBalanceError,
    MissingTransactionIdError,
    StorageFailureError,
)
from src.pw_ledger.application.idempotency import apply_once, validate_transaction_id
from src.pw_ledger.domain.models import LedgerTransaction


@pytest.fixture
def db():
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


@pytest.fixture
def repo():
    r = MagicMock()
    r.lock_card = AsyncMock()
    r.get_transaction = AsyncMock(return_value=None)
    return r


def _run(db, repo, apply, replay=None, **kwargs):
    params = {"transaction_id": "tx1", "card_id": "card-1", "operation": "DEPOSIT"}
    params.update(kwargs)
    return apply_once(
        db, repo, apply=apply, replay=replay or AsyncMock(return_value="replayed"), **params
    )


class TestValidateTransactionId:
    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_rejects_blank(self, value) -> None:
        with pytest.raises(MissingTransactionIdError):
            validate_transaction_id(value)

    def test_accepts(self) -> None:
        validate_transaction_id("tx-1")


class TestApplyOnce:
    async def test_new_transaction_applies_and_commits(self, db, repo) -> None:
        apply = AsyncMock(return_value="done")
        assert await _run(db, repo, apply) == "done"
        repo.lock_card.assert_awaited_once_with(db, "card-1")
        db.commit.assert_awaited_once()
        db.rollback.assert_not_awaited()

    async def test_existing_transaction_replays(self, db, repo) -> None:
        existing = LedgerTransaction("tx1", "card-1", "DEPOSIT")
        repo.get_transaction.return_value = existing
        apply = AsyncMock()
        replay = AsyncMock(return_value="again")

        assert await _run(db, repo, apply, replay) == "again"
        apply.assert_not_awaited()
        replay.assert_awaited_once_with(existing)
        db.commit.assert_not_awaited()

    async def test_operation_mismatch_conflicts(self, db, repo) -> None:
        repo.get_transaction.return_value = LedgerTransaction("tx1", "card-1", "CAPTURE")
        with pytest.raises(IdempotencyConflictError):
            await _run(db, repo, AsyncMock())
        db.rollback.assert_awaited()

    async def test_card_mismatch_conflicts(self, db, repo) -> None:
        repo.get_transaction.return_value = LedgerTransaction("tx1", "card-2", "DEPOSIT")
        with pytest.raises(IdempotencyConflictError):
            await _run(db, repo, AsyncMock())

    async def test_reference_mismatch_conflicts(self, db, repo) -> None:
        repo.get_transaction.return_value = LedgerTransaction(
            "tx1", "card-1", "WITHDRAWAL_FINALIZE", reference_id="wd_a"
        )
        with pytest.raises(IdempotencyConflictError):
            await _run(
                db, repo, AsyncMock(), operation="WITHDRAWAL_FINALIZE", reference_id="wd_b"
            )

    async def test_racing_duplicate_becomes_replay(self, db, repo) -> None:
        existing = LedgerTransaction("tx1", "card-1", "DEPOSIT")
        repo.get_transaction.side_effect = [None, existing]
        apply = AsyncMock(side_effect=DuplicateTransactionError("tx1"))

        assert await _run(db, repo, apply) == "replayed"
        db.rollback.assert_awaited()

    async def test_duplicate_without_committed_row(self, db, repo) -> None:
        apply = AsyncMock(side_effect=DuplicateTransactionError("tx1"))
        with pytest.raises(StorageFailureError):
            await _run(db, repo, apply)

    async def test_business_error_rolls_back(self, db, repo) -> None:
        apply = AsyncMock(side_effect=InsufficientPoolBalanceError("card-1", 100, 50))
        with pytest.raises(InsufficientPoolBalanceError):
            await _run(db, repo, apply)
        db.rollback.assert_awaited_once()
        db.commit.assert_not_awaited()

    async def test_commit_failure_is_storage_failure(self, db, repo) -> None:
        db.commit.side_effect = OperationalError("COMMIT", {}, Exception("disk full"))
        with pytest.raises(StorageFailureError):
            await _run(db, repo, AsyncMock(return_value="done"))
        db.rollback.assert_awaited_once()
