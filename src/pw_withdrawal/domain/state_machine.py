"""Withdrawal lifecycle.

    PENDING ──finalize──> FINALIZED
       │                     │
       └──────reverse────────┴──reverse──> REVERSED

FINALIZED → REVERSED is the compensating path for a settlement that bounced:
it writes REVERSAL entries instead of releasing a hold. REVERSED accepts no
further transitions.
"""

from src.pw_common.enums import WithdrawalStatus
from src.pw_common.errors import InvalidStateTransitionError
from src.pw_ledger.domain.models import WithdrawalRequest

_TRANSITIONS: dict[WithdrawalStatus, frozenset[WithdrawalStatus]] = {
    WithdrawalStatus.PENDING: frozenset({WithdrawalStatus.FINALIZED, WithdrawalStatus.REVERSED}),
    WithdrawalStatus.FINALIZED: frozenset({WithdrawalStatus.REVERSED}),
    WithdrawalStatus.REVERSED: frozenset(),
}


def can_transition(status: str, target: str) -> bool:
    return WithdrawalStatus(target) in _TRANSITIONS[WithdrawalStatus(status)]


def ensure_transition(request: WithdrawalRequest, target: WithdrawalStatus) -> None:
    if not can_transition(request.status, target):
        raise InvalidStateTransitionError(request.id, request.status, target.value)
