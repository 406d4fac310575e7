"""Account Registry: resolves the per-card Pool account and per-(card, member)
Equity accounts, creating them lazily inside the caller's unit of work."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_common.enums import AccountKind
from src.pw_common.errors import CurrencyMismatchError
from src.pw_ledger.domain.models import Account
from src.pw_ledger.domain.repository import LedgerRepositoryProtocol


class AccountRegistry:
    def __init__(self, repo: LedgerRepositoryProtocol, default_currency: str) -> None:
        self._repo = repo
        self._default_currency = default_currency

    async def pool_account(
        self, db: AsyncSession, card_id: str, currency: str | None = None
    ) -> Account:
        wanted = currency or self._default_currency
        pool = await self._repo.get_or_create_account(
            db, card_id, AccountKind.POOL.value, None, wanted
        )
        if currency is not None and pool.currency != currency:
            raise CurrencyMismatchError(card_id, pool.currency, currency)
        return pool

    async def equity_account(
        self, db: AsyncSession, card_id: str, user_id: str, currency: str
    ) -> Account:
        return await self._repo.get_or_create_account(
            db, card_id, AccountKind.MEMBER_EQUITY.value, user_id, currency
        )

    async def find_equity_account(
        self, db: AsyncSession, card_id: str, user_id: str
    ) -> Account | None:
        return await self._repo.find_account(
            db, card_id, AccountKind.MEMBER_EQUITY.value, user_id
        )
