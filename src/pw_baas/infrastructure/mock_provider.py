"""Mock BaaS provider for local development and tests.

Webhooks are signed with HMAC-SHA256 over the raw body using
BAAS_WEBHOOK_SECRET, hex encoded in the X-Baas-Signature header.
"""

import hashlib
import hmac
import logging
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.pw_baas.domain.provider import BaasEventType, CardIssueResult, NormalizedBaasEvent
from src.pw_common.cents import MAX_AMOUNT_CENTS
from src.pw_common.datetime_utils import utc_now
from src.pw_common.enums import BaasProviderName
from src.pw_common.errors import InvalidWebhookPayloadError, WebhookSignatureError

logger = logging.getLogger(__name__)

_WIDGET_BASE_URL = "https://mock-baas.local/widgets"


class MockWebhookPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["CARD_AUTH", "CARD_AUTH_REVERSAL", "CARD_CLEARING", "WALLET_FUNDING"]
    id: str = Field(..., min_length=1)
    transaction_id: str = Field(..., alias="txId", min_length=1)
    card_id: str = Field(..., alias="cardId", min_length=1)
    user_id: str = Field(..., alias="userId", min_length=1)
    amount_minor: int = Field(..., alias="amountMinor", gt=0, le=MAX_AMOUNT_CENTS)
    auth_id: str | None = Field(None, alias="authId", min_length=1)
    currency: str | None = Field(None, min_length=3, max_length=3)
    occurred_at: datetime | None = Field(None, alias="occurredAt")


def sign_payload(secret: str, raw_body: bytes) -> str:
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


class MockBaasProvider:
    name = BaasProviderName.MOCK.value

    def __init__(self, webhook_secret: str) -> None:
        self._secret = webhook_secret

    async def create_card(self, card_id: str, user_id: str) -> CardIssueResult:
        provider_card_id = f"mock_card_{card_id}"
        logger.info("Mock card issued: card=%s user=%s", card_id, user_id)
        return CardIssueResult(card_id=card_id, provider_card_id=provider_card_id, status="active")

    async def issue_widget_url(self, card_id: str, user_id: str) -> str:
        token = sign_payload(self._secret, f"{card_id}:{user_id}".encode())[:32]
        return f"{_WIDGET_BASE_URL}/mock_card_{card_id}?token={token}"

    def verify_webhook(self, raw_body: bytes, signature: str | None) -> NormalizedBaasEvent:
        expected = sign_payload(self._secret, raw_body)
        if not signature or not hmac.compare_digest(expected, signature):
            logger.warning("Rejected mock webhook: bad signature")
            raise WebhookSignatureError()
        try:
            payload = MockWebhookPayload.model_validate_json(raw_body)
        except ValidationError as exc:
            raise InvalidWebhookPayloadError(str(exc.errors()[0]["msg"])) from exc
        return NormalizedBaasEvent(
            provider=self.name,
            type=BaasEventType(payload.type),
            event_id=payload.id,
            provider_transaction_id=payload.transaction_id,
            card_id=payload.card_id,
            user_id=payload.user_id,
            amount=payload.amount_minor,
            currency=payload.currency,
            occurred_at=payload.occurred_at or utc_now(),
            raw_payload=payload.model_dump(mode="json", by_alias=True),
            provider_auth_id=payload.auth_id,
        )
