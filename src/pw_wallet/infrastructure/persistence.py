"""MemberDirectory over the wallet service's tables (wallets, wallet_members, cards).

Read-only: these tables are migrated and written by the wallet service.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.enums import SpendPolicy

_IS_MEMBER_SQL = text("""
    SELECT 1 FROM wallet_members
    WHERE wallet_id = :wallet_id AND user_id = :user_id
    LIMIT 1
""")

_CARDS_OF_WALLET_SQL = text("""
    SELECT id FROM cards
    WHERE wallet_id = :wallet_id
    ORDER BY id
""")

_MEMBERS_OF_WALLET_SQL = text("""
    SELECT user_id FROM wallet_members
    WHERE wallet_id = :wallet_id
    ORDER BY joined_at, user_id
""")

_SPEND_POLICY_SQL = text("""
    SELECT spend_policy FROM wallets WHERE id = :wallet_id
""")

_WALLET_OF_CARD_SQL = text("""
    SELECT wallet_id FROM cards WHERE id = :card_id
""")


class MemberDirectory:
    async def is_member(self, db: AsyncSession, wallet_id: str, user_id: str) -> bool:
        result = await db.execute(
            _IS_MEMBER_SQL, {"wallet_id": wallet_id, "user_id": user_id}
        )
        return result.fetchone() is not None

    async def cards_of_wallet(self, db: AsyncSession, wallet_id: str) -> list[str]:
        result = await db.execute(_CARDS_OF_WALLET_SQL, {"wallet_id": wallet_id})
        return [row.id for row in result.fetchall()]

    async def members_of_wallet(self, db: AsyncSession, wallet_id: str) -> list[str]:
        result = await db.execute(_MEMBERS_OF_WALLET_SQL, {"wallet_id": wallet_id})
        return [row.user_id for row in result.fetchall()]

    async def spend_policy(self, db: AsyncSession, wallet_id: str) -> str:
        result = await db.execute(_SPEND_POLICY_SQL, {"wallet_id": wallet_id})
        row = result.fetchone()
        if row is None or row.spend_policy is None:
            return SpendPolicy.PAYER_ONLY.value
        return str(row.spend_policy)

    async def wallet_of_card(self, db: AsyncSession, card_id: str) -> str | None:
        result = await db.execute(_WALLET_OF_CARD_SQL, {"card_id": card_id})
        row = result.fetchone()
        return row.wallet_id if row is not None else None
