"""Withdrawal commands and results."""

from dataclasses import dataclass, field
from typing import Any

from src.pw_common.cents import validate_amount
from src.pw_common.enums import TransactionOperation, WithdrawalStatus
from src.pw_ledger.application.idempotency import validate_transaction_id
from src.pw_ledger.domain.models import Entry, WithdrawalRequest

# Status a withdrawal is left in by each operation
_STATUS_AFTER: dict[str, str] = {
    TransactionOperation.WITHDRAWAL_REQUEST.value: WithdrawalStatus.PENDING.value,
    TransactionOperation.WITHDRAWAL_FINALIZE.value: WithdrawalStatus.FINALIZED.value,
    TransactionOperation.WITHDRAWAL_REVERSE.value: WithdrawalStatus.REVERSED.value,
}


@dataclass(frozen=True)
class WithdrawalCommand:
    transaction_id: str
    card_id: str
    user_id: str
    amount: int
    metadata: dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        validate_transaction_id(self.transaction_id)
        validate_amount(self.amount)


@dataclass(frozen=True)
class WithdrawalResult:
    """Outcome of one withdrawal operation.

    status is the state the operation moved the request into, so replaying an
    old transaction id returns the same result even after later transitions.
    """
    transaction_id: str
    operation: str
    withdrawal_id: str
    card_id: str
    user_id: str
    amount: int
    entries: tuple[Entry, ...]
    replayed: bool = field(default=False, compare=False)

    @property
    def status(self) -> str:
        return _STATUS_AFTER[self.operation]

    @classmethod
    def build(
        cls,
        transaction_id: str,
        operation: str,
        request: WithdrawalRequest,
        entries: list[Entry] | tuple[Entry, ...],
        replayed: bool = False,
    ) -> "WithdrawalResult":
        return cls(
            transaction_id=transaction_id,
            operation=operation,
            withdrawal_id=request.id,
            card_id=request.card_id,
            user_id=request.user_id,
            amount=request.amount,
            entries=tuple(entries),
            replayed=replayed,
        )
