"""Pydantic read models for ledger entries, shared by every API that returns them."""

from typing import Any

from pydantic import BaseModel

from src.pw_common.cents import cents_to_display
from src.pw_common.datetime_utils import to_iso
from src.pw_ledger.domain.models import Entry


class EntryItem(BaseModel):
    id: int
    account_id: str
    transaction_id: str
    kind: str
    amount_cents: int
    amount_display: str
    created_at: str | None
    metadata: dict[str, Any]

    @classmethod
    def from_entry(cls, entry: Entry) -> "EntryItem":
        return cls(
            id=entry.id,
            account_id=entry.account_id,
            transaction_id=entry.transaction_id,
            kind=entry.kind,
            amount_cents=entry.amount,
            amount_display=cents_to_display(entry.amount),
            created_at=to_iso(entry.created_at),
            metadata=dict(entry.metadata),
        )
