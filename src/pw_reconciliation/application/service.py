"""ReconciliationService: read-only recomputation of card balances.

Each report is built from one snapshot transaction and the session is rolled
back afterwards; nothing is ever written. Inconsistencies are returned in the
report (and logged at ERROR), never raised.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pw_common.datetime_utils import utc_now
from src.pw_ledger.domain.balances import CardTotals, load_card_totals
from src.pw_ledger.domain.repository import LedgerRepositoryProtocol
from src.pw_ledger.infrastructure.persistence import LedgerRepository
from src.pw_reconciliation.domain.invariants import check_card_invariants
from src.pw_reconciliation.domain.models import (
    CardReconciliation,
    MemberEquity,
    WalletReconciliation,
)
from src.pw_wallet.domain.directory import MemberDirectoryProtocol


def build_report(totals: CardTotals, allow_negative_equity: bool) -> CardReconciliation:
    violations = check_card_invariants(totals, allow_negative_equity)
    return CardReconciliation(
        card_id=totals.card_id,
        currency=totals.currency,
        pool_balance=totals.pool_balance,
        member_equity=tuple(
            MemberEquity(m.user_id, m.balance, m.reserved, m.pending) for m in totals.members
        ),
        sum_of_member_equity=totals.sum_of_member_equity,
        pending_withdrawals=totals.pending_withdrawals,
        consistent=totals.sum_of_member_equity == totals.pool_balance,
        violations=tuple(violations),
        checked_at=utc_now(),
    )


class ReconciliationService:
    def __init__(
        self,
        repo: LedgerRepositoryProtocol | None = None,
        allow_negative_equity: bool | None = None,
    ) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository()
        self._allow_negative_equity = (
            settings.ALLOW_NEGATIVE_EQUITY
            if allow_negative_equity is None
            else allow_negative_equity
        )

    async def reconcile(self, db: AsyncSession, card_id: str) -> CardReconciliation:
        await self._begin_snapshot(db)
        try:
            totals = await load_card_totals(self._repo, db, card_id)
        finally:
            await db.rollback()
        return build_report(totals, self._allow_negative_equity)

    async def reconcile_wallet(
        self, db: AsyncSession, directory: MemberDirectoryProtocol, wallet_id: str
    ) -> WalletReconciliation:
        card_ids = await directory.cards_of_wallet(db, wallet_id)
        await self._begin_snapshot(db)
        try:
            all_totals = [await load_card_totals(self._repo, db, c) for c in card_ids]
        finally:
            await db.rollback()
        return WalletReconciliation(
            wallet_id=wallet_id,
            cards=tuple(build_report(t, self._allow_negative_equity) for t in all_totals),
            checked_at=utc_now(),
        )

    async def _begin_snapshot(self, db: AsyncSession) -> None:
        # Snapshot isolation must be set before the transaction's first query
        await db.rollback()
        await self._repo.begin_snapshot(db)
