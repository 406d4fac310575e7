"""In-memory Ledger Storage: same Protocol as the PostgreSQL repository.

Used by the unit and API tests. Writes are staged on a MemorySession and
land in the shared MemoryLedgerStore in one synchronous step on commit(),
so a concurrent reader sees either none or all of a transaction. Reads
through a session see committed state plus that session's own staged
writes, or a frozen copy after begin_snapshot().
"""

import itertools
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from src.pw_common.datetime_utils import utc_now
from src.pw_common.enums import AccountKind
from src.pw_common.errors import DuplicateTransactionError, InternalError
from src.pw_ledger.domain.models import (
    Account,
    CardAuthHold,
    Entry,
    LedgerTransaction,
    NewEntry,
    WithdrawalRequest,
)


@dataclass
class _LedgerState:
    accounts: dict[str, Account] = field(default_factory=dict)
    transactions: dict[str, LedgerTransaction] = field(default_factory=dict)
    entries: list[Entry] = field(default_factory=list)
    withdrawals: dict[str, WithdrawalRequest] = field(default_factory=dict)
    # keyed by (provider, provider_auth_id)
    holds: dict[tuple[str, str], CardAuthHold] = field(default_factory=dict)

    def copy(self) -> "_LedgerState":
        return _LedgerState(
            accounts=dict(self.accounts),
            transactions=dict(self.transactions),
            entries=list(self.entries),
            withdrawals=dict(self.withdrawals),
            holds=dict(self.holds),
        )


class MemoryLedgerStore:
    """Committed ledger state shared by all sessions."""

    def __init__(self) -> None:
        self.state = _LedgerState()
        self._entry_ids = itertools.count(1)
        self.commit_count = 0

    def session(self) -> "MemorySession":
        return MemorySession(self)

    def next_entry_id(self) -> int:
        return next(self._entry_ids)

    def apply(self, staged: _LedgerState) -> None:
        # Unique transaction ids are enforced at commit time, like a unique
        # index that only sees another writer's row once it commits.
        for txn_id in staged.transactions:
            if txn_id in self.state.transactions:
                raise DuplicateTransactionError(txn_id)
        for account in staged.accounts.values():
            clash = _find_account(
                self.state.accounts.values(), account.card_id, account.kind, account.user_id
            )
            if clash is not None and clash.id != account.id:
                raise InternalError(f"Concurrent account creation on card {account.card_id}")
        self.state.accounts.update(staged.accounts)
        self.state.transactions.update(staged.transactions)
        self.state.entries.extend(staged.entries)
        self.state.withdrawals.update(staged.withdrawals)
        self.state.holds.update(staged.holds)
        self.commit_count += 1


class MemorySession:
    """Unit of work duck-typed to the AsyncSession calls the services make."""

    def __init__(self, store: MemoryLedgerStore) -> None:
        self.store = store
        self._staged = _LedgerState()
        self._snapshot: _LedgerState | None = None

    async def __aenter__(self) -> "MemorySession":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def commit(self) -> None:
        staged, self._staged = self._staged, _LedgerState()
        self._snapshot = None
        self.store.apply(staged)

    async def rollback(self) -> None:
        self._staged = _LedgerState()
        self._snapshot = None

    async def close(self) -> None:
        await self.rollback()

    def freeze_snapshot(self) -> None:
        self._snapshot = self.store.state.copy()

    @property
    def has_pending_writes(self) -> bool:
        s = self._staged
        return bool(s.accounts or s.transactions or s.entries or s.withdrawals or s.holds)

    # -- merged views ------------------------------------------------------

    def accounts(self) -> list[Account]:
        if self._snapshot is not None:
            return list(self._snapshot.accounts.values())
        return [*self.store.state.accounts.values(), *self._staged.accounts.values()]

    def transactions(self) -> dict[str, LedgerTransaction]:
        if self._snapshot is not None:
            return self._snapshot.transactions
        return {**self.store.state.transactions, **self._staged.transactions}

    def entries(self) -> list[Entry]:
        if self._snapshot is not None:
            return self._snapshot.entries
        return [*self.store.state.entries, *self._staged.entries]

    def withdrawals(self) -> dict[str, WithdrawalRequest]:
        if self._snapshot is not None:
            return self._snapshot.withdrawals
        return {**self.store.state.withdrawals, **self._staged.withdrawals}

    def holds(self) -> dict[tuple[str, str], CardAuthHold]:
        if self._snapshot is not None:
            return self._snapshot.holds
        return {**self.store.state.holds, **self._staged.holds}

    @property
    def staged(self) -> _LedgerState:
        return self._staged


def _find_account(
    accounts: Iterable[Account], card_id: str, kind: str, user_id: str | None
) -> Account | None:
    for account in accounts:
        if account.card_id == card_id and account.kind == kind and account.user_id == user_id:
            return account
    return None


class MemoryLedgerRepository:
    """LedgerRepositoryProtocol over MemorySession. Card exclusion comes from
    the in-process CardLockRegistry, so lock_card is a no-op here."""

    async def lock_card(self, db: MemorySession, card_id: str) -> None:
        return None

    async def begin_snapshot(self, db: MemorySession) -> None:
        db.freeze_snapshot()

    async def get_or_create_account(
        self,
        db: MemorySession,
        card_id: str,
        kind: str,
        user_id: str | None,
        currency: str,
    ) -> Account:
        existing = _find_account(db.accounts(), card_id, kind, user_id)
        if existing is not None:
            return existing
        account = Account(
            id=str(uuid.uuid4()),
            card_id=card_id,
            kind=kind,
            user_id=user_id if kind == AccountKind.MEMBER_EQUITY else None,
            currency=currency,
            created_at=utc_now(),
        )
        db.staged.accounts[account.id] = account
        return account

    async def find_account(
        self, db: MemorySession, card_id: str, kind: str, user_id: str | None
    ) -> Account | None:
        return _find_account(db.accounts(), card_id, kind, user_id)

    async def list_card_accounts(self, db: MemorySession, card_id: str) -> list[Account]:
        return [a for a in db.accounts() if a.card_id == card_id]

    async def get_transaction(
        self, db: MemorySession, transaction_id: str
    ) -> LedgerTransaction | None:
        return db.transactions().get(transaction_id)

    async def insert_transaction(
        self, db: MemorySession, txn: LedgerTransaction
    ) -> LedgerTransaction:
        if txn.transaction_id in db.transactions():
            raise DuplicateTransactionError(txn.transaction_id)
        stored = replace(txn, created_at=txn.created_at or utc_now())
        db.staged.transactions[txn.transaction_id] = stored
        return stored

    async def insert_entries(
        self, db: MemorySession, transaction_id: str, entries: list[NewEntry]
    ) -> list[Entry]:
        now = utc_now()
        created = [
            Entry(
                id=db.store.next_entry_id(),
                account_id=e.account_id,
                transaction_id=transaction_id,
                amount=e.amount,
                kind=e.kind,
                created_at=now,
                metadata=dict(e.metadata),
            )
            for e in entries
        ]
        db.staged.entries.extend(created)
        return created

    async def list_transaction_entries(
        self, db: MemorySession, transaction_id: str
    ) -> list[Entry]:
        return sorted(
            (e for e in db.entries() if e.transaction_id == transaction_id),
            key=lambda e: e.id,
        )

    async def list_card_entries(self, db: MemorySession, card_id: str) -> list[Entry]:
        account_ids = {a.id for a in db.accounts() if a.card_id == card_id}
        return sorted(
            (e for e in db.entries() if e.account_id in account_ids),
            key=lambda e: e.id,
        )

    async def create_withdrawal(
        self, db: MemorySession, request: WithdrawalRequest
    ) -> WithdrawalRequest:
        stored = replace(request, created_at=request.created_at or utc_now())
        db.staged.withdrawals[stored.id] = stored
        return stored

    async def get_withdrawal(
        self, db: MemorySession, withdrawal_id: str
    ) -> WithdrawalRequest | None:
        return db.withdrawals().get(withdrawal_id)

    async def update_withdrawal(
        self, db: MemorySession, request: WithdrawalRequest
    ) -> WithdrawalRequest:
        if request.id not in db.withdrawals():
            raise InternalError(f"Withdrawal {request.id} vanished during update")
        db.staged.withdrawals[request.id] = request
        return request

    async def list_withdrawals(
        self, db: MemorySession, card_id: str, status: str | None
    ) -> list[WithdrawalRequest]:
        return [
            w
            for w in db.withdrawals().values()
            if w.card_id == card_id and (status is None or w.status == status)
        ]

    async def insert_auth_hold(
        self, db: MemorySession, hold: CardAuthHold
    ) -> CardAuthHold | None:
        key = (hold.provider, hold.provider_auth_id)
        if key in db.holds():
            return None
        stored = replace(hold, created_at=hold.created_at or utc_now())
        db.staged.holds[key] = stored
        return stored

    async def get_auth_hold(
        self, db: MemorySession, provider: str, provider_auth_id: str
    ) -> CardAuthHold | None:
        return db.holds().get((provider, provider_auth_id))

    async def update_auth_hold(self, db: MemorySession, hold: CardAuthHold) -> CardAuthHold:
        key = (hold.provider, hold.provider_auth_id)
        if key not in db.holds():
            raise InternalError(f"Auth hold {hold.id} vanished during update")
        db.staged.holds[key] = hold
        return hold

    async def list_auth_holds(
        self, db: MemorySession, card_id: str, status: str | None
    ) -> list[CardAuthHold]:
        return [
            h
            for h in db.holds().values()
            if h.card_id == card_id and (status is None or h.status == status)
        ]
