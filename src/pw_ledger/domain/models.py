"""Domain models for pw_ledger: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Account:
    id: str
    card_id: str
    kind: str                        # AccountKind value
    user_id: str | None              # only for MEMBER_EQUITY
    currency: str
    created_at: datetime | None = None


@dataclass(frozen=True)
class Entry:
    id: int                          # BIGSERIAL, insertion order
    account_id: str
    transaction_id: str
    amount: int                      # cents, positive=credit negative=debit
    kind: str                        # EntryKind value
    created_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NewEntry:
    """An entry staged for insert; id and created_at come from storage."""
    account_id: str
    amount: int
    kind: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerTransaction:
    transaction_id: str
    card_id: str
    operation: str                   # TransactionOperation value
    reference_id: str | None = None  # withdrawal id for withdrawal operations
    created_at: datetime | None = None


@dataclass(frozen=True)
class WithdrawalRequest:
    id: str
    card_id: str
    user_id: str
    amount: int                      # cents
    status: str                      # WithdrawalStatus value
    request_transaction_id: str
    finalize_transaction_id: str | None = None
    reverse_transaction_id: str | None = None
    created_at: datetime | None = None
    resolved_at: datetime | None = None


@dataclass(frozen=True)
class PostingResult:
    """Outcome of a posting transaction, rebuilt identically on replay."""
    transaction_id: str
    operation: str
    card_id: str
    entries: tuple[Entry, ...]
    replayed: bool = field(default=False, compare=False)

    @property
    def entry_ids(self) -> list[int]:
        return [e.id for e in self.entries]


@dataclass(frozen=True)
class CardAuthHold:
    """Funds earmarked by an approved card authorization until clearing or reversal.

    Keyed by (provider, provider_auth_id). Holds never move ledger money.
    """
    id: str
    provider: str
    provider_auth_id: str
    card_id: str
    user_id: str
    amount: int                      # cents
    currency: str
    status: str                      # AuthHoldStatus value
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    cleared_at: datetime | None = None
    reversed_at: datetime | None = None
