"""BalanceProjector: display balances for cards and wallets.

Uses load_card_totals(), the same summation reconciliation runs, so the two
can never disagree. Reads run in one snapshot and are rolled back.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_balances.domain.views import AggregatedWalletBalances, CardDisplayBalances, aggregate
from src.pw_ledger.domain.balances import load_card_totals
from src.pw_ledger.domain.models import Entry
from src.pw_ledger.domain.repository import LedgerRepositoryProtocol
from src.pw_ledger.infrastructure.persistence import LedgerRepository
from src.pw_wallet.domain.directory import MemberDirectoryProtocol


class BalanceProjector:
    def __init__(self, repo: LedgerRepositoryProtocol | None = None) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository()

    async def card_balances(self, db: AsyncSession, card_id: str) -> CardDisplayBalances:
        await db.rollback()
        await self._repo.begin_snapshot(db)
        try:
            totals = await load_card_totals(self._repo, db, card_id)
        finally:
            await db.rollback()
        return CardDisplayBalances.from_totals(totals)

    async def wallet_balances(
        self, db: AsyncSession, directory: MemberDirectoryProtocol, wallet_id: str
    ) -> AggregatedWalletBalances:
        card_ids = await directory.cards_of_wallet(db, wallet_id)
        await db.rollback()
        await self._repo.begin_snapshot(db)
        try:
            cards = [
                CardDisplayBalances.from_totals(await load_card_totals(self._repo, db, card_id))
                for card_id in card_ids
            ]
        finally:
            await db.rollback()
        return aggregate(wallet_id, cards)

    async def card_entries(self, db: AsyncSession, card_id: str) -> list[Entry]:
        """Audit trail: every entry on the card's accounts, oldest first."""
        try:
            return await self._repo.list_card_entries(db, card_id)
        finally:
            await db.rollback()
