"""Card balance summation: the single arithmetic shared by posting checks,
reconciliation and the read-side projections.

Equity entries fall into two classes:
  settled      DEPOSIT, CAPTURE, WITHDRAWAL_FINALIZE, REVERSAL  -> balance
  reservation  WITHDRAWAL_RESERVE, WITHDRAWAL_RELEASE           -> reserved (negated sum)

Pending withdrawals come from PENDING WithdrawalRequests, so a member's
reserved amount from entries and pending amount from requests are two
independent views of the same holds (reconciliation compares them).

PENDING card authorization holds sit outside the ledger. They narrow what
new authorizations and withdrawal requests may take from the pool, never
the balances themselves.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.enums import (
    RESERVATION_KINDS,
    AccountKind,
    AuthHoldStatus,
    WithdrawalStatus,
)
from src.pw_ledger.domain.models import Account, CardAuthHold, Entry, WithdrawalRequest
from src.pw_ledger.domain.repository import LedgerRepositoryProtocol


@dataclass(frozen=True)
class MemberTotals:
    user_id: str
    account_id: str
    balance: int     # settled equity, cents
    reserved: int    # held by reservation entries, cents
    pending: int     # sum of PENDING withdrawal requests, cents

    @property
    def available(self) -> int:
        return self.balance - self.pending


@dataclass(frozen=True)
class CardTotals:
    card_id: str
    currency: str | None
    pool_account_id: str | None
    pool_balance: int
    members: tuple[MemberTotals, ...]   # in equity account creation order
    pending_withdrawals: int
    pending_holds: int = 0     # PENDING card authorization holds, cents

    @property
    def sum_of_member_equity(self) -> int:
        return sum(m.balance for m in self.members)

    @property
    def available_pool(self) -> int:
        return self.pool_balance - self.pending_withdrawals

    @property
    def authorizable_pool(self) -> int:
        """What a new authorization or withdrawal request may still take."""
        return self.available_pool - self.pending_holds

    def member(self, user_id: str) -> MemberTotals | None:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None


def summarize(
    card_id: str,
    accounts: list[Account],
    entries: list[Entry],
    withdrawals: list[WithdrawalRequest],
    holds: Iterable[CardAuthHold] = (),
) -> CardTotals:
    """Fold a card's entries, withdrawal requests and auth holds into CardTotals."""
    settled: dict[str, int] = defaultdict(int)
    reserved: dict[str, int] = defaultdict(int)
    for entry in entries:
        if entry.kind in RESERVATION_KINDS:
            reserved[entry.account_id] -= entry.amount
        else:
            settled[entry.account_id] += entry.amount

    pending_by_user: dict[str, int] = defaultdict(int)
    for w in withdrawals:
        if w.status == WithdrawalStatus.PENDING:
            pending_by_user[w.user_id] += w.amount

    pool: Account | None = None
    members: list[MemberTotals] = []
    for account in accounts:
        if account.kind == AccountKind.POOL:
            pool = account
        elif account.user_id is not None:
            members.append(
                MemberTotals(
                    user_id=account.user_id,
                    account_id=account.id,
                    balance=settled[account.id],
                    reserved=reserved[account.id],
                    pending=pending_by_user[account.user_id],
                )
            )

    return CardTotals(
        card_id=card_id,
        currency=pool.currency if pool else None,
        pool_account_id=pool.id if pool else None,
        pool_balance=settled[pool.id] if pool else 0,
        members=tuple(members),
        pending_withdrawals=sum(pending_by_user.values()),
        pending_holds=sum(h.amount for h in holds if h.status == AuthHoldStatus.PENDING),
    )


async def load_card_totals(
    repo: LedgerRepositoryProtocol, db: AsyncSession, card_id: str
) -> CardTotals:
    """Read a card's accounts, entries, pending withdrawals and holds, then summarize."""
    accounts = await repo.list_card_accounts(db, card_id)
    entries = await repo.list_card_entries(db, card_id)
    withdrawals = await repo.list_withdrawals(db, card_id, WithdrawalStatus.PENDING.value)
    holds = await repo.list_auth_holds(db, card_id, AuthHoldStatus.PENDING.value)
    return summarize(card_id, accounts, entries, withdrawals, holds)
