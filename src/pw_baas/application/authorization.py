"""Card authorization decisions and the holds they leave behind.

An authorization is approved when the card's pool, less pending withdrawals
and open holds, covers the amount. Approval records a PENDING hold keyed by
(provider, auth id); clearing marks it CLEARED and an auth reversal marks it
REVERSED. Holds never write ledger entries.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pw_baas.domain.provider import NormalizedBaasEvent
from src.pw_common.card_locks import CardLockRegistry, card_locks
from src.pw_common.datetime_utils import utc_now
from src.pw_common.enums import AuthDecision, AuthHoldStatus
from src.pw_common.errors import StorageFailureError
from src.pw_common.id_generator import generate_id
from src.pw_ledger.domain.balances import load_card_totals
from src.pw_ledger.domain.models import CardAuthHold
from src.pw_ledger.domain.repository import LedgerRepositoryProtocol
from src.pw_ledger.infrastructure.persistence import LedgerRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationOutcome:
    decision: str                     # AuthDecision value
    hold: CardAuthHold | None = None
    reason: str | None = None         # set on DECLINE
    replayed: bool = False

    @property
    def approved(self) -> bool:
        return self.decision == AuthDecision.APPROVE


def declined(reason: str) -> AuthorizationOutcome:
    return AuthorizationOutcome(AuthDecision.DECLINE.value, reason=reason)


class CardAuthorizer:
    def __init__(
        self,
        repo: LedgerRepositoryProtocol | None = None,
        locks: CardLockRegistry | None = None,
        default_currency: str | None = None,
    ) -> None:
        self._repo: LedgerRepositoryProtocol = repo or LedgerRepository(
            lock_timeout_seconds=settings.CARD_LOCK_TIMEOUT_SECONDS
        )
        self._locks = locks or card_locks
        self._default_currency = default_currency or settings.DEFAULT_CURRENCY

    async def authorize(
        self, db: AsyncSession, event: NormalizedBaasEvent
    ) -> AuthorizationOutcome:
        """APPROVE and hold the amount, or DECLINE; a redelivered auth returns its hold."""
        async with self._card_unit(db, event.card_id):
            existing = await self._repo.get_auth_hold(db, event.provider, event.auth_id)
            if existing is not None:
                await db.rollback()
                logger.info("Auth replay: auth=%s hold=%s", event.auth_id, existing.id)
                return AuthorizationOutcome(AuthDecision.APPROVE.value, existing, replayed=True)

            totals = await load_card_totals(self._repo, db, event.card_id)
            available = totals.authorizable_pool
            if event.amount > available:
                await db.rollback()
                logger.warning(
                    "Auth declined: card=%s auth=%s requested=%d available=%d",
                    event.card_id, event.auth_id, event.amount, available,
                )
                return declined(
                    f"insufficient funds: requested {event.amount}, available {available}"
                )

            hold = await self._repo.insert_auth_hold(
                db,
                CardAuthHold(
                    id=generate_id("hold_"),
                    provider=event.provider,
                    provider_auth_id=event.auth_id,
                    card_id=event.card_id,
                    user_id=event.user_id,
                    amount=event.amount,
                    currency=event.currency or totals.currency or self._default_currency,
                    status=AuthHoldStatus.PENDING.value,
                    metadata={"provider_event_id": event.event_id},
                ),
            )
            if hold is None:
                # Same auth id recorded on another card between lookup and insert
                await db.rollback()
                return declined(f"authorization {event.auth_id} already recorded")
            await db.commit()

        logger.info(
            "Auth approved: card=%s auth=%s amount=%d hold=%s",
            event.card_id, event.auth_id, event.amount, hold.id,
        )
        return AuthorizationOutcome(AuthDecision.APPROVE.value, hold)

    async def clear(self, db: AsyncSession, event: NormalizedBaasEvent) -> CardAuthHold | None:
        return await self._release(db, event, AuthHoldStatus.CLEARED)

    async def reverse(self, db: AsyncSession, event: NormalizedBaasEvent) -> CardAuthHold | None:
        return await self._release(db, event, AuthHoldStatus.REVERSED)

    async def _release(
        self, db: AsyncSession, event: NormalizedBaasEvent, status: AuthHoldStatus
    ) -> CardAuthHold | None:
        """Move a PENDING hold to `status`. Already released holds are returned as they are."""
        async with self._card_unit(db, event.card_id):
            hold = await self._repo.get_auth_hold(db, event.provider, event.auth_id)
            if hold is None or hold.card_id != event.card_id:
                await db.rollback()
                logger.warning(
                    "No auth hold to mark %s: card=%s auth=%s",
                    status.value, event.card_id, event.auth_id,
                )
                return None
            if hold.status != AuthHoldStatus.PENDING:
                await db.rollback()
                return hold

            now = utc_now()
            updated = await self._repo.update_auth_hold(
                db,
                replace(
                    hold,
                    status=status.value,
                    cleared_at=now if status == AuthHoldStatus.CLEARED else None,
                    reversed_at=now if status == AuthHoldStatus.REVERSED else None,
                ),
            )
            await db.commit()

        logger.info("Auth hold %s: hold=%s auth=%s", status.value, updated.id, event.auth_id)
        return updated

    @asynccontextmanager
    async def _card_unit(self, db: AsyncSession, card_id: str) -> AsyncIterator[None]:
        async with self._locks.hold(card_id):
            try:
                await self._repo.lock_card(db, card_id)
                yield
            except SQLAlchemyError as exc:
                await db.rollback()
                logger.error("Auth hold write failed: card=%s: %s", card_id, exc)
                raise StorageFailureError(f"Auth hold write failed on card {card_id}") from exc
            except Exception:
                await db.rollback()
                raise
