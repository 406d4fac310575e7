"""WithdrawalService: two-phase member cash-outs.

Phase one (request) only holds funds: a WITHDRAWAL_RESERVE entry on the
member's equity plus a PENDING request, both outside the settled balance.
Phase two either finalizes (release the hold, debit pool and equity) or
reverses (release the hold, or credit back a finalized withdrawal).
"""

import logging
from dataclasses import replace

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pw_common.card_locks import CardLockRegistry, card_locks
from src.pw_common.datetime_utils import utc_now
from src.pw_common.enums import EntryKind, TransactionOperation, WithdrawalStatus
from src.pw_common.errors import (
    InsufficientAvailableBalanceError,
    InsufficientPoolBalanceError,
    InternalError,
    UnknownMemberError,
    WithdrawalNotFoundError,
)
from src.pw_common.id_generator import generate_id
from src.pw_ledger.application.idempotency import apply_once, validate_transaction_id
from src.pw_ledger.domain.balances import load_card_totals
from src.pw_ledger.domain.models import LedgerTransaction, NewEntry, WithdrawalRequest
from src.pw_ledger.domain.registry import AccountRegistry
from src.pw_ledger.domain.repository import LedgerRepositoryProtocol
from src.pw_ledger.infrastructure.persistence import LedgerRepository
from src.pw_withdrawal.domain.models import WithdrawalCommand, WithdrawalResult
from src.pw_withdrawal.domain.state_machine import ensure_transition

logger = logging.getLogger(__name__)

_REQUEST = TransactionOperation.WITHDRAWAL_REQUEST.value
_FINALIZE = TransactionOperation.WITHDRAWAL_FINALIZE.value
_REVERSE = TransactionOperation.WITHDRAWAL_REVERSE.value


class WithdrawalService:
    def __init__(
        self,
        repo: LedgerRepositoryProtocol | None = None,
        locks: CardLockRegistry | None = None,
        default_currency: str | None = None,
    ) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository(
            lock_timeout_seconds=settings.CARD_LOCK_TIMEOUT_SECONDS
        )
        self._locks = locks or card_locks
        self._registry = AccountRegistry(
            self._repo, default_currency or settings.DEFAULT_CURRENCY
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def request_withdrawal(
        self, db: AsyncSession, cmd: WithdrawalCommand
    ) -> WithdrawalResult:
        cmd.validate()
        async with self._locks.hold(cmd.card_id):
            return await apply_once(
                db,
                self._repo,
                transaction_id=cmd.transaction_id,
                card_id=cmd.card_id,
                operation=_REQUEST,
                apply=lambda: self._apply_request(db, cmd),
                replay=lambda txn: self._replay(db, txn),
            )

    async def finalize_withdrawal(
        self, db: AsyncSession, transaction_id: str, withdrawal_id: str
    ) -> WithdrawalResult:
        return await self._resolve(db, transaction_id, withdrawal_id, _FINALIZE)

    async def reverse_withdrawal(
        self, db: AsyncSession, transaction_id: str, withdrawal_id: str
    ) -> WithdrawalResult:
        return await self._resolve(db, transaction_id, withdrawal_id, _REVERSE)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_withdrawal(self, db: AsyncSession, withdrawal_id: str) -> WithdrawalRequest:
        request = await self._repo.get_withdrawal(db, withdrawal_id)
        if request is None:
            raise WithdrawalNotFoundError(withdrawal_id)
        return request

    async def list_withdrawals(
        self, db: AsyncSession, card_id: str, status: str | None = None
    ) -> list[WithdrawalRequest]:
        return await self._repo.list_withdrawals(db, card_id, status)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _resolve(
        self, db: AsyncSession, transaction_id: str, withdrawal_id: str, operation: str
    ) -> WithdrawalResult:
        validate_transaction_id(transaction_id)
        # The card is only known from the request; it is re-read under the lock
        request = await self.get_withdrawal(db, withdrawal_id)
        await db.rollback()
        apply = self._apply_finalize if operation == _FINALIZE else self._apply_reverse
        async with self._locks.hold(request.card_id):
            return await apply_once(
                db,
                self._repo,
                transaction_id=transaction_id,
                card_id=request.card_id,
                operation=operation,
                reference_id=withdrawal_id,
                apply=lambda: apply(db, transaction_id, withdrawal_id),
                replay=lambda txn: self._replay(db, txn),
            )

    async def _apply_request(
        self, db: AsyncSession, cmd: WithdrawalCommand
    ) -> WithdrawalResult:
        totals = await load_card_totals(self._repo, db, cmd.card_id)
        member = totals.member(cmd.user_id)
        if member is None:
            raise UnknownMemberError(cmd.card_id, cmd.user_id)
        if cmd.amount > member.available:
            raise InsufficientAvailableBalanceError(cmd.user_id, cmd.amount, member.available)
        # Open card authorization holds are already promised to merchants
        if cmd.amount > totals.authorizable_pool:
            raise InsufficientPoolBalanceError(cmd.card_id, cmd.amount, totals.authorizable_pool)

        withdrawal_id = generate_id("wd_")
        await self._repo.insert_transaction(
            db, LedgerTransaction(cmd.transaction_id, cmd.card_id, _REQUEST, withdrawal_id)
        )
        request = await self._repo.create_withdrawal(
            db,
            WithdrawalRequest(
                id=withdrawal_id,
                card_id=cmd.card_id,
                user_id=cmd.user_id,
                amount=cmd.amount,
                status=WithdrawalStatus.PENDING.value,
                request_transaction_id=cmd.transaction_id,
            ),
        )
        metadata = {**cmd.metadata, "withdrawal_id": withdrawal_id}
        entries = await self._repo.insert_entries(
            db,
            cmd.transaction_id,
            [NewEntry(member.account_id, -cmd.amount, EntryKind.WITHDRAWAL_RESERVE.value, metadata)],
        )
        logger.info(
            "Withdrawal requested: id=%s card=%s user=%s amount=%d",
            withdrawal_id, cmd.card_id, cmd.user_id, cmd.amount,
        )
        return WithdrawalResult.build(cmd.transaction_id, _REQUEST, request, entries)

    async def _apply_finalize(
        self, db: AsyncSession, transaction_id: str, withdrawal_id: str
    ) -> WithdrawalResult:
        request = await self.get_withdrawal(db, withdrawal_id)
        if request.finalize_transaction_id is not None:
            return await self._replay_existing(db, request.finalize_transaction_id)
        ensure_transition(request, WithdrawalStatus.FINALIZED)

        pool, equity_id = await self._accounts(db, request)
        metadata = {"withdrawal_id": request.id}
        new_entries = [
            NewEntry(equity_id, request.amount, EntryKind.WITHDRAWAL_RELEASE.value, metadata),
            NewEntry(pool, -request.amount, EntryKind.WITHDRAWAL_FINALIZE.value, metadata),
            NewEntry(equity_id, -request.amount, EntryKind.WITHDRAWAL_FINALIZE.value, metadata),
        ]
        return await self._write_resolution(
            db, transaction_id, _FINALIZE, request, new_entries,
            replace(
                request,
                status=WithdrawalStatus.FINALIZED.value,
                finalize_transaction_id=transaction_id,
                resolved_at=utc_now(),
            ),
        )

    async def _apply_reverse(
        self, db: AsyncSession, transaction_id: str, withdrawal_id: str
    ) -> WithdrawalResult:
        request = await self.get_withdrawal(db, withdrawal_id)
        if request.reverse_transaction_id is not None:
            return await self._replay_existing(db, request.reverse_transaction_id)
        ensure_transition(request, WithdrawalStatus.REVERSED)

        pool, equity_id = await self._accounts(db, request)
        metadata = {"withdrawal_id": request.id}
        if request.status == WithdrawalStatus.PENDING:
            # Only the hold goes away; settled balances never moved
            new_entries = [
                NewEntry(equity_id, request.amount, EntryKind.WITHDRAWAL_RELEASE.value, metadata),
            ]
        else:
            new_entries = [
                NewEntry(pool, request.amount, EntryKind.REVERSAL.value, metadata),
                NewEntry(equity_id, request.amount, EntryKind.REVERSAL.value, metadata),
            ]
        return await self._write_resolution(
            db, transaction_id, _REVERSE, request, new_entries,
            replace(
                request,
                status=WithdrawalStatus.REVERSED.value,
                reverse_transaction_id=transaction_id,
                resolved_at=utc_now(),
            ),
        )

    async def _accounts(self, db: AsyncSession, request: WithdrawalRequest) -> tuple[str, str]:
        pool = await self._registry.pool_account(db, request.card_id)
        equity = await self._registry.find_equity_account(db, request.card_id, request.user_id)
        if equity is None:
            raise InternalError(
                f"Withdrawal {request.id} references missing equity account "
                f"for user {request.user_id} on card {request.card_id}"
            )
        return pool.id, equity.id

    async def _write_resolution(
        self,
        db: AsyncSession,
        transaction_id: str,
        operation: str,
        request: WithdrawalRequest,
        new_entries: list[NewEntry],
        updated: WithdrawalRequest,
    ) -> WithdrawalResult:
        await self._repo.insert_transaction(
            db, LedgerTransaction(transaction_id, request.card_id, operation, request.id)
        )
        entries = await self._repo.insert_entries(db, transaction_id, new_entries)
        await self._repo.update_withdrawal(db, updated)
        logger.info(
            "Withdrawal %s: id=%s %s -> %s amount=%d",
            operation, request.id, request.status, updated.status, request.amount,
        )
        return WithdrawalResult.build(transaction_id, operation, request, entries)

    async def _replay_existing(self, db: AsyncSession, transaction_id: str) -> WithdrawalResult:
        """Re-entry on an already resolved request returns the recorded resolution."""
        txn = await self._repo.get_transaction(db, transaction_id)
        if txn is None:
            raise InternalError(f"Recorded transaction {transaction_id} is missing")
        return await self._replay(db, txn)

    async def _replay(self, db: AsyncSession, txn: LedgerTransaction) -> WithdrawalResult:
        if txn.reference_id is None:
            raise InternalError(f"Transaction {txn.transaction_id} has no withdrawal reference")
        request = await self.get_withdrawal(db, txn.reference_id)
        entries = await self._repo.list_transaction_entries(db, txn.transaction_id)
        return WithdrawalResult.build(
            txn.transaction_id, txn.operation, request, entries, replayed=True
        )
