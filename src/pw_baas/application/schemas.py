"""Pydantic read models for the BaaS API."""

from pydantic import BaseModel

from src.pw_baas.application.ingest import IngestOutcome
from src.pw_common.cents import cents_to_display
from src.pw_common.datetime_utils import to_iso
from src.pw_ledger.domain.models import CardAuthHold
from src.pw_posting.application.schemas import PostingResponse


class AuthHoldItem(BaseModel):
    id: str
    provider_auth_id: str
    card_id: str
    user_id: str
    status: str
    amount_cents: int
    amount_display: str
    currency: str
    created_at: str | None
    cleared_at: str | None
    reversed_at: str | None

    @classmethod
    def from_hold(cls, hold: CardAuthHold) -> "AuthHoldItem":
        return cls(
            id=hold.id,
            provider_auth_id=hold.provider_auth_id,
            card_id=hold.card_id,
            user_id=hold.user_id,
            status=hold.status,
            amount_cents=hold.amount,
            amount_display=cents_to_display(hold.amount),
            currency=hold.currency,
            created_at=to_iso(hold.created_at),
            cleared_at=to_iso(hold.cleared_at),
            reversed_at=to_iso(hold.reversed_at),
        )


class WebhookResponse(BaseModel):
    event_id: str
    type: str
    decision: str | None
    decline_reason: str | None
    posting: PostingResponse | None
    hold: AuthHoldItem | None

    @classmethod
    def from_outcome(cls, outcome: IngestOutcome) -> "WebhookResponse":
        return cls(
            event_id=outcome.event.event_id,
            type=outcome.event.type.value,
            decision=outcome.decision,
            decline_reason=outcome.decline_reason,
            posting=PostingResponse.from_result(outcome.posting) if outcome.posting else None,
            hold=AuthHoldItem.from_hold(outcome.hold) if outcome.hold else None,
        )
