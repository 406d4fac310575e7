"""Read-facing balance views, derived from CardTotals only."""

from dataclasses import dataclass

from src.pw_ledger.domain.balances import CardTotals


@dataclass(frozen=True)
class MemberBalance:
    user_id: str
    balance: int
    pending: int

    @property
    def available(self) -> int:
        return self.balance - self.pending


@dataclass(frozen=True)
class CardDisplayBalances:
    card_id: str
    currency: str | None
    pool_balance: int
    pending_withdrawals: int
    members: tuple[MemberBalance, ...]
    pending_holds: int = 0     # open card authorizations, outside the ledger

    @property
    def available_pool(self) -> int:
        return self.pool_balance - self.pending_withdrawals

    @classmethod
    def from_totals(cls, totals: CardTotals) -> "CardDisplayBalances":
        return cls(
            card_id=totals.card_id,
            currency=totals.currency,
            pool_balance=totals.pool_balance,
            pending_withdrawals=totals.pending_withdrawals,
            members=tuple(MemberBalance(m.user_id, m.balance, m.pending) for m in totals.members),
            pending_holds=totals.pending_holds,
        )


@dataclass(frozen=True)
class AggregatedWalletBalances:
    wallet_id: str
    pool_balance: int
    pending_withdrawals: int
    members: tuple[MemberBalance, ...]   # merged across cards, first-seen order
    cards: tuple[CardDisplayBalances, ...]

    @property
    def available_pool(self) -> int:
        return self.pool_balance - self.pending_withdrawals


def aggregate(wallet_id: str, cards: list[CardDisplayBalances]) -> AggregatedWalletBalances:
    merged: dict[str, tuple[int, int]] = {}
    for card in cards:
        for m in card.members:
            balance, pending = merged.get(m.user_id, (0, 0))
            merged[m.user_id] = (balance + m.balance, pending + m.pending)
    return AggregatedWalletBalances(
        wallet_id=wallet_id,
        pool_balance=sum(c.pool_balance for c in cards),
        pending_withdrawals=sum(c.pending_withdrawals for c in cards),
        members=tuple(MemberBalance(u, b, p) for u, (b, p) in merged.items()),
        cards=tuple(cards),
    )
