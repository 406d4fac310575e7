"""Typed posting commands. validate() runs before any storage access."""

from dataclasses import dataclass, field
from typing import Any

from src.pw_common.cents import MAX_AMOUNT_CENTS, is_valid_amount, validate_amount
from src.pw_common.errors import InvalidSplitError
from src.pw_ledger.application.idempotency import validate_transaction_id


@dataclass(frozen=True)
class Split:
    user_id: str
    amount: int  # cents, > 0


@dataclass(frozen=True)
class DepositCommand:
    transaction_id: str
    card_id: str
    user_id: str
    amount: int
    currency: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        validate_transaction_id(self.transaction_id)
        validate_amount(self.amount)


@dataclass(frozen=True)
class CaptureCommand:
    transaction_id: str
    card_id: str
    splits: tuple[Split, ...]
    # When set, the split amounts must add up to exactly this total
    expected_total: int | None = None
    currency: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(s.amount for s in self.splits)

    def validate(self) -> None:
        validate_transaction_id(self.transaction_id)
        if not self.splits:
            raise InvalidSplitError("splits must not be empty")
        seen: set[str] = set()
        for split in self.splits:
            if not split.user_id:
                raise InvalidSplitError("split user_id must not be empty")
            if not is_valid_amount(split.amount):
                raise InvalidSplitError(
                    f"amount for {split.user_id} must be a positive integer "
                    f"of at most {MAX_AMOUNT_CENTS}, got {split.amount}"
                )
            if split.user_id in seen:
                raise InvalidSplitError(f"user {split.user_id} appears more than once")
            seen.add(split.user_id)
        if self.total > MAX_AMOUNT_CENTS:
            raise InvalidSplitError(f"splits sum to {self.total}, above {MAX_AMOUNT_CENTS}")
        if self.expected_total is not None and self.total != self.expected_total:
            raise InvalidSplitError(
                f"splits sum to {self.total}, expected {self.expected_total}"
            )
