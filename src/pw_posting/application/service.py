"""PostingEngine: deposits and captures against a card's pooled ledger.

Each operation validates its command, takes the card's in-process lock, then
hands an apply/replay pair to apply_once(), which adds the storage lock,
the idempotency check and the single commit.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pw_common.card_locks import CardLockRegistry, card_locks
from src.pw_common.enums import EntryKind, SpendPolicy, TransactionOperation
from src.pw_common.errors import (
    InsufficientAvailableBalanceError,
    InsufficientPoolBalanceError,
    UnknownMemberError,
)
from src.pw_ledger.application.idempotency import apply_once
from src.pw_ledger.domain.balances import load_card_totals
from src.pw_ledger.domain.models import LedgerTransaction, NewEntry, PostingResult
from src.pw_ledger.domain.registry import AccountRegistry
from src.pw_ledger.domain.repository import LedgerRepositoryProtocol
from src.pw_ledger.infrastructure.persistence import LedgerRepository
from src.pw_posting.domain.commands import CaptureCommand, DepositCommand
from src.pw_posting.domain.split_policy import calculate_splits

logger = logging.getLogger(__name__)


class PostingEngine:
    def __init__(
        self,
        repo: LedgerRepositoryProtocol | None = None,
        locks: CardLockRegistry | None = None,
        default_currency: str | None = None,
        allow_negative_equity: bool | None = None,
    ) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository(
            lock_timeout_seconds=settings.CARD_LOCK_TIMEOUT_SECONDS
        )
        self._locks = locks or card_locks
        self._registry = AccountRegistry(
            self._repo, default_currency or settings.DEFAULT_CURRENCY
        )
        self._allow_negative_equity = (
            settings.ALLOW_NEGATIVE_EQUITY
            if allow_negative_equity is None
            else allow_negative_equity
        )

    async def post_deposit(self, db: AsyncSession, cmd: DepositCommand) -> PostingResult:
        """Credit the pool and the depositing member's equity by the same amount."""
        cmd.validate()
        async with self._locks.hold(cmd.card_id):
            return await apply_once(
                db,
                self._repo,
                transaction_id=cmd.transaction_id,
                card_id=cmd.card_id,
                operation=TransactionOperation.DEPOSIT.value,
                apply=lambda: self._apply_deposit(db, cmd),
                replay=lambda txn: self._replay(db, txn),
            )

    async def post_capture(self, db: AsyncSession, cmd: CaptureCommand) -> PostingResult:
        """Debit the pool by the split total and each member's equity by its split."""
        cmd.validate()
        async with self._locks.hold(cmd.card_id):
            return await apply_once(
                db,
                self._repo,
                transaction_id=cmd.transaction_id,
                card_id=cmd.card_id,
                operation=TransactionOperation.CAPTURE.value,
                apply=lambda: self._apply_capture(db, cmd),
                replay=lambda txn: self._replay(db, txn),
            )

    async def post_policy_capture(
        self,
        db: AsyncSession,
        transaction_id: str,
        card_id: str,
        amount: int,
        policy: SpendPolicy | str,
        payer_user_id: str,
        member_user_ids: list[str],
        metadata: dict | None = None,
        currency: str | None = None,
    ) -> PostingResult:
        """Capture a card amount split across members by the wallet's spend policy."""
        splits = calculate_splits(policy, amount, payer_user_id, member_user_ids)
        cmd = CaptureCommand(
            transaction_id=transaction_id,
            card_id=card_id,
            splits=splits,
            expected_total=amount,
            currency=currency,
            metadata={**(metadata or {}), "spend_policy": SpendPolicy(policy).value},
        )
        return await self.post_capture(db, cmd)

    async def _apply_deposit(self, db: AsyncSession, cmd: DepositCommand) -> PostingResult:
        pool = await self._registry.pool_account(db, cmd.card_id, cmd.currency)
        equity = await self._registry.equity_account(
            db, cmd.card_id, cmd.user_id, pool.currency
        )
        operation = TransactionOperation.DEPOSIT.value
        await self._repo.insert_transaction(
            db, LedgerTransaction(cmd.transaction_id, cmd.card_id, operation)
        )
        kind = EntryKind.DEPOSIT.value
        entries = await self._repo.insert_entries(
            db,
            cmd.transaction_id,
            [
                NewEntry(pool.id, cmd.amount, kind, dict(cmd.metadata)),
                NewEntry(equity.id, cmd.amount, kind, dict(cmd.metadata)),
            ],
        )
        logger.info(
            "Deposit posted: txn=%s card=%s user=%s amount=%d",
            cmd.transaction_id, cmd.card_id, cmd.user_id, cmd.amount,
        )
        return PostingResult(cmd.transaction_id, operation, cmd.card_id, tuple(entries))

    async def _apply_capture(self, db: AsyncSession, cmd: CaptureCommand) -> PostingResult:
        pool = await self._registry.pool_account(db, cmd.card_id, cmd.currency)
        totals = await load_card_totals(self._repo, db, cmd.card_id)
        total = cmd.total
        if total > totals.available_pool:
            raise InsufficientPoolBalanceError(cmd.card_id, total, totals.available_pool)

        kind = EntryKind.CAPTURE.value
        new_entries = [NewEntry(pool.id, -total, kind, dict(cmd.metadata))]
        for split in cmd.splits:
            member = totals.member(split.user_id)
            if member is None:
                if not self._allow_negative_equity:
                    raise UnknownMemberError(cmd.card_id, split.user_id)
                account = await self._registry.equity_account(
                    db, cmd.card_id, split.user_id, pool.currency
                )
                account_id = account.id
            else:
                if split.amount > member.available and not self._allow_negative_equity:
                    raise InsufficientAvailableBalanceError(
                        split.user_id, split.amount, member.available
                    )
                account_id = member.account_id
            new_entries.append(NewEntry(account_id, -split.amount, kind, dict(cmd.metadata)))

        operation = TransactionOperation.CAPTURE.value
        await self._repo.insert_transaction(
            db, LedgerTransaction(cmd.transaction_id, cmd.card_id, operation)
        )
        entries = await self._repo.insert_entries(db, cmd.transaction_id, new_entries)
        logger.info(
            "Capture posted: txn=%s card=%s total=%d splits=%d",
            cmd.transaction_id, cmd.card_id, total, len(cmd.splits),
        )
        return PostingResult(cmd.transaction_id, operation, cmd.card_id, tuple(entries))

    async def _replay(self, db: AsyncSession, txn: LedgerTransaction) -> PostingResult:
        entries = await self._repo.list_transaction_entries(db, txn.transaction_id)
        return PostingResult(
            txn.transaction_id, txn.operation, txn.card_id, tuple(entries), replayed=True
        )
