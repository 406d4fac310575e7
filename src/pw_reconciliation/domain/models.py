"""Reconciliation reports: point-in-time, never persisted."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class MemberEquity:
    user_id: str
    balance: int
    reserved: int
    pending: int

    @property
    def available(self) -> int:
        return self.balance - self.pending


@dataclass(frozen=True)
class CardReconciliation:
    card_id: str
    currency: str | None
    pool_balance: int
    member_equity: tuple[MemberEquity, ...]
    sum_of_member_equity: int
    pending_withdrawals: int
    consistent: bool              # sum_of_member_equity == pool_balance
    violations: tuple[str, ...]   # every failed check, including the one above
    checked_at: datetime


@dataclass(frozen=True)
class WalletReconciliation:
    wallet_id: str
    cards: tuple[CardReconciliation, ...]
    checked_at: datetime

    @property
    def consistent(self) -> bool:
        return all(c.consistent for c in self.cards)
