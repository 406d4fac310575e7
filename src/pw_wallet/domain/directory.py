"""Wallet/Member collaborator boundary.

Wallets, their members and their cards are owned outside the ledger; the
ledger only asks these questions by id.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession


class MemberDirectoryProtocol(Protocol):
    async def is_member(self, db: AsyncSession, wallet_id: str, user_id: str) -> bool: ...

    async def cards_of_wallet(self, db: AsyncSession, wallet_id: str) -> list[str]: ...

    async def members_of_wallet(self, db: AsyncSession, wallet_id: str) -> list[str]:
        """Member user ids in join order."""
        ...

    async def spend_policy(self, db: AsyncSession, wallet_id: str) -> str:
        """SpendPolicy value configured for the wallet."""
        ...

    async def wallet_of_card(self, db: AsyncSession, card_id: str) -> str | None: ...
