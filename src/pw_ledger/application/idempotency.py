"""Apply one ledger transaction atomically and at most once.

Every posting/withdrawal operation goes through apply_once():
  1. take the card's storage lock (no-op for the in-memory store)
  2. if the transaction_id is already committed, rebuild its result (replay)
  3. otherwise run `apply`, then commit; any failure rolls back everything

A DuplicateTransactionError from a racing writer (same transaction_id, other
card lock or other process) is turned into a replay of the committed result.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.errors import (
    AppError,
    DuplicateTransactionError,
    IdempotencyConflictError,
    MissingTransactionIdError,
    StorageFailureError,
)
from src.pw_ledger.domain.models import LedgerTransaction
from src.pw_ledger.domain.repository import LedgerRepositoryProtocol

logger = logging.getLogger(__name__)

T = TypeVar("T")


def validate_transaction_id(transaction_id: str) -> None:
    if not isinstance(transaction_id, str) or not transaction_id.strip():
        raise MissingTransactionIdError()


def _ensure_same_request(
    existing: LedgerTransaction,
    card_id: str,
    operation: str,
    reference_id: str | None,
) -> None:
    requested = f"{operation} on card {card_id}"
    recorded = f"{existing.operation} on card {existing.card_id}"
    if reference_id is not None and existing.reference_id != reference_id:
        requested += f" ({reference_id})"
        recorded += f" ({existing.reference_id})"
        raise IdempotencyConflictError(existing.transaction_id, recorded, requested)
    if existing.operation != operation or existing.card_id != card_id:
        raise IdempotencyConflictError(existing.transaction_id, recorded, requested)


async def apply_once(
    db: AsyncSession,
    repo: LedgerRepositoryProtocol,
    *,
    transaction_id: str,
    card_id: str,
    operation: str,
    apply: Callable[[], Awaitable[T]],
    replay: Callable[[LedgerTransaction], Awaitable[T]],
    reference_id: str | None = None,
) -> T:
    try:
        await repo.lock_card(db, card_id)
        existing = await repo.get_transaction(db, transaction_id)
        if existing is None:
            result = await apply()
            await db.commit()
            return result
        _ensure_same_request(existing, card_id, operation, reference_id)
        result = await replay(existing)
        await db.rollback()
    except DuplicateTransactionError:
        await db.rollback()
        existing = await repo.get_transaction(db, transaction_id)
        if existing is None:
            raise StorageFailureError(
                f"Transaction {transaction_id} reported duplicate but is not committed"
            ) from None
        _ensure_same_request(existing, card_id, operation, reference_id)
        result = await replay(existing)
        await db.rollback()
    except AppError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Ledger commit failed: txn=%s card=%s: %s", transaction_id, card_id, exc)
        raise StorageFailureError(f"Commit failed for transaction {transaction_id}") from exc
    except Exception:
        await db.rollback()
        raise

    logger.info("Idempotent replay: txn=%s op=%s card=%s", transaction_id, operation, card_id)
    return result
