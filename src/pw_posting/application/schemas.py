"""Pydantic schemas for the posting API."""

from typing import Any

from pydantic import BaseModel, Field

from src.pw_common.cents import MAX_AMOUNT_CENTS
from src.pw_ledger.application.schemas import EntryItem
from src.pw_ledger.domain.models import PostingResult
from src.pw_posting.domain.commands import CaptureCommand, DepositCommand, Split

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class DepositRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=128)
    wallet_id: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    amount_cents: int = Field(
        ..., gt=0, le=MAX_AMOUNT_CENTS, description="Deposit amount in cents"
    )
    currency: str | None = Field(None, min_length=3, max_length=3)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_command(self) -> DepositCommand:
        return DepositCommand(
            transaction_id=self.transaction_id,
            card_id=self.card_id,
            user_id=self.user_id,
            amount=self.amount_cents,
            currency=self.currency,
            metadata=self.metadata,
        )


class SplitItem(BaseModel):
    user_id: str = Field(..., min_length=1)
    amount_cents: int = Field(..., gt=0, le=MAX_AMOUNT_CENTS)


class CaptureRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=128)
    wallet_id: str = Field(..., min_length=1)
    card_id: str = Field(..., min_length=1)
    splits: list[SplitItem] = Field(..., min_length=1)
    total_cents: int | None = Field(
        None, gt=0, le=MAX_AMOUNT_CENTS, description="Must equal the split sum when given"
    )
    currency: str | None = Field(None, min_length=3, max_length=3)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_command(self) -> CaptureCommand:
        return CaptureCommand(
            transaction_id=self.transaction_id,
            card_id=self.card_id,
            splits=tuple(Split(s.user_id, s.amount_cents) for s in self.splits),
            expected_total=self.total_cents,
            currency=self.currency,
            metadata=self.metadata,
        )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class PostingResponse(BaseModel):
    transaction_id: str
    operation: str
    card_id: str
    replayed: bool
    entries: list[EntryItem]

    @classmethod
    def from_result(cls, result: PostingResult) -> "PostingResponse":
        return cls(
            transaction_id=result.transaction_id,
            operation=result.operation,
            card_id=result.card_id,
            replayed=result.replayed,
            entries=[EntryItem.from_entry(e) for e in result.entries],
        )
