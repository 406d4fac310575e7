"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class AccountKind(str, Enum):
    POOL = "POOL"
    MEMBER_EQUITY = "MEMBER_EQUITY"


class EntryKind(str, Enum):
    DEPOSIT = "DEPOSIT"
    CAPTURE = "CAPTURE"
    # Reservation kinds: tracked against availability, not settled balance
    WITHDRAWAL_RESERVE = "WITHDRAWAL_RESERVE"
    WITHDRAWAL_RELEASE = "WITHDRAWAL_RELEASE"
    WITHDRAWAL_FINALIZE = "WITHDRAWAL_FINALIZE"
    REVERSAL = "REVERSAL"


RESERVATION_KINDS: frozenset[str] = frozenset(
    {EntryKind.WITHDRAWAL_RESERVE.value, EntryKind.WITHDRAWAL_RELEASE.value}
)


class TransactionOperation(str, Enum):
    """Which ledger operation a transaction_id was first applied with."""
    DEPOSIT = "DEPOSIT"
    CAPTURE = "CAPTURE"
    WITHDRAWAL_REQUEST = "WITHDRAWAL_REQUEST"
    WITHDRAWAL_FINALIZE = "WITHDRAWAL_FINALIZE"
    WITHDRAWAL_REVERSE = "WITHDRAWAL_REVERSE"


class WithdrawalStatus(str, Enum):
    PENDING = "PENDING"
    FINALIZED = "FINALIZED"
    REVERSED = "REVERSED"


class SpendPolicy(str, Enum):
    PAYER_ONLY = "PAYER_ONLY"
    EQUAL_SPLIT = "EQUAL_SPLIT"


class BaasProviderName(str, Enum):
    MOCK = "mock"
    STRIPE_ISSUING = "stripe_issuing"
    SYNCTERA = "synctera"


class AuthHoldStatus(str, Enum):
    PENDING = "PENDING"
    CLEARED = "CLEARED"
    REVERSED = "REVERSED"


class AuthDecision(str, Enum):
    APPROVE = "APPROVE"
    DECLINE = "DECLINE"
