"""Repository Protocol: dependency inversion for testability.

Unit tests inject a mock or the in-memory store that conforms to this Protocol.
Infrastructure layer provides the PostgreSQL implementation.

Every method runs inside the caller's unit of work (`db`); the caller commits
or rolls back.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_ledger.domain.models import (
    Account,
    CardAuthHold,
    Entry,
    LedgerTransaction,
    NewEntry,
    WithdrawalRequest,
)


class LedgerRepositoryProtocol(Protocol):
    async def lock_card(self, db: AsyncSession, card_id: str) -> None: ...

    async def begin_snapshot(self, db: AsyncSession) -> None: ...

    async def get_or_create_account(
        self,
        db: AsyncSession,
        card_id: str,
        kind: str,
        user_id: str | None,
        currency: str,
    ) -> Account: ...

    async def find_account(
        self, db: AsyncSession, card_id: str, kind: str, user_id: str | None
    ) -> Account | None: ...

    async def list_card_accounts(
        self, db: AsyncSession, card_id: str
    ) -> list[Account]: ...

    async def get_transaction(
        self, db: AsyncSession, transaction_id: str
    ) -> LedgerTransaction | None: ...

    async def insert_transaction(
        self, db: AsyncSession, txn: LedgerTransaction
    ) -> LedgerTransaction: ...

    async def insert_entries(
        self, db: AsyncSession, transaction_id: str, entries: list[NewEntry]
    ) -> list[Entry]: ...

    async def list_transaction_entries(
        self, db: AsyncSession, transaction_id: str
    ) -> list[Entry]: ...

    async def list_card_entries(
        self, db: AsyncSession, card_id: str
    ) -> list[Entry]: ...

    async def create_withdrawal(
        self, db: AsyncSession, request: WithdrawalRequest
    ) -> WithdrawalRequest: ...

    async def get_withdrawal(
        self, db: AsyncSession, withdrawal_id: str
    ) -> WithdrawalRequest | None: ...

    async def update_withdrawal(
        self, db: AsyncSession, request: WithdrawalRequest
    ) -> WithdrawalRequest: ...

    async def list_withdrawals(
        self, db: AsyncSession, card_id: str, status: str | None
    ) -> list[WithdrawalRequest]: ...

    async def insert_auth_hold(
        self, db: AsyncSession, hold: CardAuthHold
    ) -> CardAuthHold | None:
        """Insert a hold; None when (provider, provider_auth_id) already exists."""
        ...

    async def get_auth_hold(
        self, db: AsyncSession, provider: str, provider_auth_id: str
    ) -> CardAuthHold | None: ...

    async def update_auth_hold(
        self, db: AsyncSession, hold: CardAuthHold
    ) -> CardAuthHold: ...

    async def list_auth_holds(
        self, db: AsyncSession, card_id: str, status: str | None
    ) -> list[CardAuthHold]: ...
