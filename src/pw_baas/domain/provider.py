"""BaaS provider capability set.

One Protocol, one implementation per provider, chosen by configuration at
process start. The ledger never sees provider identity: webhooks come out of
verify_webhook() as NormalizedBaasEvent and are turned into posting commands.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol


class BaasEventType(str, Enum):
    CARD_AUTH = "CARD_AUTH"
    CARD_AUTH_REVERSAL = "CARD_AUTH_REVERSAL"
    CARD_CLEARING = "CARD_CLEARING"
    WALLET_FUNDING = "WALLET_FUNDING"


@dataclass(frozen=True)
class NormalizedBaasEvent:
    provider: str
    type: BaasEventType
    event_id: str
    provider_transaction_id: str
    card_id: str
    user_id: str             # funder for WALLET_FUNDING, cardholder otherwise
    amount: int              # cents
    currency: str | None
    occurred_at: datetime
    # authorization a clearing or reversal refers to; CARD_AUTH uses its own tx id
    provider_auth_id: str | None = None
    raw_payload: dict[str, Any] = field(default_factory=dict)

    @property
    def auth_id(self) -> str:
        return self.provider_auth_id or self.provider_transaction_id

    @property
    def ledger_transaction_id(self) -> str:
        """Stable idempotency key: provider retries map onto the same posting."""
        return f"baas:{self.provider}:{self.provider_transaction_id}"


@dataclass(frozen=True)
class CardIssueResult:
    card_id: str
    provider_card_id: str
    status: str


class BaasProvider(Protocol):
    name: str

    async def create_card(self, card_id: str, user_id: str) -> CardIssueResult: ...

    async def issue_widget_url(self, card_id: str, user_id: str) -> str: ...

    def verify_webhook(self, raw_body: bytes, signature: str | None) -> NormalizedBaasEvent:
        """Check the signature, then parse and normalize the payload."""
        ...
