"""Pydantic schemas for the withdrawal API."""

from typing import Any

from pydantic import BaseModel, Field

from src.pw_common.cents import MAX_AMOUNT_CENTS, cents_to_display
from src.pw_common.datetime_utils import to_iso
from src.pw_ledger.application.schemas import EntryItem
from src.pw_ledger.domain.models import WithdrawalRequest
from src.pw_withdrawal.domain.models import WithdrawalCommand, WithdrawalResult


class WithdrawalCreateRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=128)
    wallet_id: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    amount_cents: int = Field(
        ..., gt=0, le=MAX_AMOUNT_CENTS, description="Amount to withdraw in cents"
    )
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_command(self) -> WithdrawalCommand:
        return WithdrawalCommand(
            transaction_id=self.transaction_id,
            card_id=self.card_id,
            user_id=self.user_id,
            amount=self.amount_cents,
            metadata=self.metadata,
        )


class WithdrawalResolveRequest(BaseModel):
    """Body for finalize and reverse."""
    transaction_id: str = Field(..., min_length=1, max_length=128)
    wallet_id: str = Field(..., min_length=1)


class WithdrawalResultResponse(BaseModel):
    transaction_id: str
    operation: str
    withdrawal_id: str
    card_id: str
    user_id: str
    status: str
    amount_cents: int
    amount_display: str
    replayed: bool
    entries: list[EntryItem]

    @classmethod
    def from_result(cls, result: WithdrawalResult) -> "WithdrawalResultResponse":
        return cls(
            transaction_id=result.transaction_id,
            operation=result.operation,
            withdrawal_id=result.withdrawal_id,
            card_id=result.card_id,
            user_id=result.user_id,
            status=result.status,
            amount_cents=result.amount,
            amount_display=cents_to_display(result.amount),
            replayed=result.replayed,
            entries=[EntryItem.from_entry(e) for e in result.entries],
        )


class WithdrawalResponse(BaseModel):
    id: str
    card_id: str
    user_id: str
    status: str
    amount_cents: int
    amount_display: str
    request_transaction_id: str
    finalize_transaction_id: str | None
    reverse_transaction_id: str | None
    created_at: str | None
    resolved_at: str | None

    @classmethod
    def from_request(cls, request: WithdrawalRequest) -> "WithdrawalResponse":
        return cls(
            id=request.id,
            card_id=request.card_id,
            user_id=request.user_id,
            status=request.status,
            amount_cents=request.amount,
            amount_display=cents_to_display(request.amount),
            request_transaction_id=request.request_transaction_id,
            finalize_transaction_id=request.finalize_transaction_id,
            reverse_transaction_id=request.reverse_transaction_id,
            created_at=to_iso(request.created_at),
            resolved_at=to_iso(request.resolved_at),
        )
