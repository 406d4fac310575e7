"""Pydantic schemas for reconciliation reports."""

from pydantic import BaseModel

from src.pw_common.cents import cents_to_display
from src.pw_reconciliation.domain.models import CardReconciliation, WalletReconciliation


class MemberEquityItem(BaseModel):
    user_id: str
    balance_cents: int
    reserved_cents: int
    pending_cents: int
    available_cents: int


class CardReconciliationResponse(BaseModel):
    card_id: str
    currency: str | None
    pool_balance_cents: int
    pool_balance_display: str
    sum_of_member_equity_cents: int
    pending_withdrawals_cents: int
    member_equity: list[MemberEquityItem]
    consistent: bool
    violations: list[str]
    checked_at: str

    @classmethod
    def from_report(cls, report: CardReconciliation) -> "CardReconciliationResponse":
        return cls(
            card_id=report.card_id,
            currency=report.currency,
            pool_balance_cents=report.pool_balance,
            pool_balance_display=cents_to_display(report.pool_balance),
            sum_of_member_equity_cents=report.sum_of_member_equity,
            pending_withdrawals_cents=report.pending_withdrawals,
            member_equity=[
                MemberEquityItem(
                    user_id=m.user_id,
                    balance_cents=m.balance,
                    reserved_cents=m.reserved,
                    pending_cents=m.pending,
                    available_cents=m.available,
                )
                for m in report.member_equity
            ],
            consistent=report.consistent,
            violations=list(report.violations),
            checked_at=report.checked_at.isoformat(),
        )


class WalletReconciliationResponse(BaseModel):
    wallet_id: str
    consistent: bool
    cards: list[CardReconciliationResponse]
    checked_at: str

    @classmethod
    def from_report(cls, report: WalletReconciliation) -> "WalletReconciliationResponse":
        return cls(
            wallet_id=report.wallet_id,
            consistent=report.consistent,
            cards=[CardReconciliationResponse.from_report(c) for c in report.cards],
            checked_at=report.checked_at.isoformat(),
        )
