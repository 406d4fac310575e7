"""Pydantic schemas for balance queries."""

from pydantic import BaseModel

from src.pw_balances.domain.views import (
    AggregatedWalletBalances,
    CardDisplayBalances,
    MemberBalance,
)
from src.pw_common.cents import cents_to_display


class MemberBalanceItem(BaseModel):
    user_id: str
    balance_cents: int
    balance_display: str
    pending_cents: int
    available_cents: int
    available_display: str

    @classmethod
    def from_view(cls, m: MemberBalance) -> "MemberBalanceItem":
        return cls(
            user_id=m.user_id,
            balance_cents=m.balance,
            balance_display=cents_to_display(m.balance),
            pending_cents=m.pending,
            available_cents=m.available,
            available_display=cents_to_display(m.available),
        )


class CardBalancesResponse(BaseModel):
    card_id: str
    currency: str | None
    pool_balance_cents: int
    pool_balance_display: str
    pending_withdrawals_cents: int
    pending_holds_cents: int
    available_pool_cents: int
    members: list[MemberBalanceItem]

    @classmethod
    def from_view(cls, view: CardDisplayBalances) -> "CardBalancesResponse":
        return cls(
            card_id=view.card_id,
            currency=view.currency,
            pool_balance_cents=view.pool_balance,
            pool_balance_display=cents_to_display(view.pool_balance),
            pending_withdrawals_cents=view.pending_withdrawals,
            pending_holds_cents=view.pending_holds,
            available_pool_cents=view.available_pool,
            members=[MemberBalanceItem.from_view(m) for m in view.members],
        )


class WalletBalancesResponse(BaseModel):
    wallet_id: str
    pool_balance_cents: int
    pool_balance_display: str
    pending_withdrawals_cents: int
    available_pool_cents: int
    members: list[MemberBalanceItem]
    cards: list[CardBalancesResponse]

    @classmethod
    def from_view(cls, view: AggregatedWalletBalances) -> "WalletBalancesResponse":
        return cls(
            wallet_id=view.wallet_id,
            pool_balance_cents=view.pool_balance,
            pool_balance_display=cents_to_display(view.pool_balance),
            pending_withdrawals_cents=view.pending_withdrawals,
            available_pool_cents=view.available_pool,
            members=[MemberBalanceItem.from_view(m) for m in view.members],
            cards=[CardBalancesResponse.from_view(c) for c in view.cards],
        )
