"""Membership checks run by API callers before they invoke a ledger operation."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.errors import WalletMismatchError
from src.pw_wallet.domain.directory import MemberDirectoryProtocol


async def ensure_card_in_wallet(
    directory: MemberDirectoryProtocol, db: AsyncSession, wallet_id: str, card_id: str
) -> None:
    if card_id not in await directory.cards_of_wallet(db, wallet_id):
        raise WalletMismatchError(f"card {card_id} does not belong to wallet {wallet_id}")


async def ensure_members(
    directory: MemberDirectoryProtocol,
    db: AsyncSession,
    wallet_id: str,
    user_ids: list[str],
) -> None:
    for user_id in user_ids:
        if not await directory.is_member(db, wallet_id, user_id):
            raise WalletMismatchError(f"user {user_id} is not a member of wallet {wallet_id}")


async def ensure_card_members(
    directory: MemberDirectoryProtocol,
    db: AsyncSession,
    wallet_id: str,
    card_id: str,
    user_ids: list[str],
) -> None:
    await ensure_card_in_wallet(directory, db, wallet_id, card_id)
    await ensure_members(directory, db, wallet_id, user_ids)
