"""Turn verified BaaS events into ledger postings and authorization holds.

WALLET_FUNDING      -> deposit by the funding member
CARD_AUTH           -> APPROVE/DECLINE against the card's pool; approval holds the amount
CARD_AUTH_REVERSAL  -> release the hold; no ledger movement
CARD_CLEARING       -> capture split by the wallet's spend policy, then clear the hold
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from src.pw_baas.application.authorization import CardAuthorizer, declined
from src.pw_baas.domain.provider import BaasEventType, NormalizedBaasEvent
from src.pw_common.errors import WalletMismatchError
from src.pw_ledger.domain.models import CardAuthHold, PostingResult
from src.pw_posting.application.service import PostingEngine
from src.pw_posting.domain.commands import DepositCommand
from src.pw_wallet.application.guards import ensure_members
from src.pw_wallet.domain.directory import MemberDirectoryProtocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestOutcome:
    event: NormalizedBaasEvent
    posting: PostingResult | None = None
    hold: CardAuthHold | None = None
    decision: str | None = None         # CARD_AUTH only
    decline_reason: str | None = None

    @property
    def processed(self) -> bool:
        return self.posting is not None or self.hold is not None or self.decision is not None


class BaasEventIngestor:
    def __init__(
        self,
        posting: PostingEngine | None = None,
        authorizer: CardAuthorizer | None = None,
    ) -> None:
        self._posting = posting or PostingEngine()
        self._authorizer = authorizer or CardAuthorizer()

    async def handle(
        self,
        db: AsyncSession,
        directory: MemberDirectoryProtocol,
        event: NormalizedBaasEvent,
    ) -> IngestOutcome:
        if event.type == BaasEventType.CARD_AUTH:
            return await self._authorize(db, directory, event)
        if event.type == BaasEventType.CARD_AUTH_REVERSAL:
            hold = await self._authorizer.reverse(db, event)
            return IngestOutcome(event, hold=hold)

        wallet_id = await directory.wallet_of_card(db, event.card_id)
        if wallet_id is None:
            raise WalletMismatchError(f"card {event.card_id} is not attached to any wallet")
        await ensure_members(directory, db, wallet_id, [event.user_id])
        metadata = {"provider": event.provider, "provider_event_id": event.event_id}

        if event.type == BaasEventType.WALLET_FUNDING:
            posting = await self._posting.post_deposit(
                db,
                DepositCommand(
                    transaction_id=event.ledger_transaction_id,
                    card_id=event.card_id,
                    user_id=event.user_id,
                    amount=event.amount,
                    currency=event.currency,
                    metadata=metadata,
                ),
            )
            return IngestOutcome(event, posting=posting)

        policy = await directory.spend_policy(db, wallet_id)
        members = await directory.members_of_wallet(db, wallet_id)
        posting = await self._posting.post_policy_capture(
            db,
            transaction_id=event.ledger_transaction_id,
            card_id=event.card_id,
            amount=event.amount,
            policy=policy,
            payer_user_id=event.user_id,
            member_user_ids=members,
            metadata={**metadata, "provider_auth_id": event.auth_id},
            currency=event.currency,
        )
        hold = await self._authorizer.clear(db, event)
        return IngestOutcome(event, posting=posting, hold=hold)

    async def _authorize(
        self,
        db: AsyncSession,
        directory: MemberDirectoryProtocol,
        event: NormalizedBaasEvent,
    ) -> IngestOutcome:
        wallet_id = await directory.wallet_of_card(db, event.card_id)
        if wallet_id is None:
            outcome = declined(f"card {event.card_id} is not attached to any wallet")
        elif not await directory.is_member(db, wallet_id, event.user_id):
            outcome = declined(f"user {event.user_id} is not a member of wallet {wallet_id}")
        else:
            outcome = await self._authorizer.authorize(db, event)
        if not outcome.approved:
            logger.info("Auth declined: card=%s reason=%s", event.card_id, outcome.reason)
        return IngestOutcome(
            event, hold=outcome.hold, decision=outcome.decision, decline_reason=outcome.reason
        )
