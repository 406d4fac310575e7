"""In-process MemberDirectory used by the tests."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from src.pw_common.enums import SpendPolicy


@dataclass
class WalletRecord:
    wallet_id: str
    members: list[str] = field(default_factory=list)  # join order
    cards: list[str] = field(default_factory=list)
    spend_policy: str = SpendPolicy.PAYER_ONLY.value


class StaticMemberDirectory:
    def __init__(self, wallets: Iterable[WalletRecord] = ()) -> None:
        self._wallets: dict[str, WalletRecord] = {w.wallet_id: w for w in wallets}

    def add(self, wallet: WalletRecord) -> None:
        self._wallets[wallet.wallet_id] = wallet

    async def is_member(self, db: object, wallet_id: str, user_id: str) -> bool:
        wallet = self._wallets.get(wallet_id)
        return wallet is not None and user_id in wallet.members

    async def cards_of_wallet(self, db: object, wallet_id: str) -> list[str]:
        wallet = self._wallets.get(wallet_id)
        return list(wallet.cards) if wallet else []

    async def members_of_wallet(self, db: object, wallet_id: str) -> list[str]:
        wallet = self._wallets.get(wallet_id)
        return list(wallet.members) if wallet else []

    async def spend_policy(self, db: object, wallet_id: str) -> str:
        wallet = self._wallets.get(wallet_id)
        return wallet.spend_policy if wallet else SpendPolicy.PAYER_ONLY.value

    async def wallet_of_card(self, db: object, card_id: str) -> str | None:
        for wallet in self._wallets.values():
            if card_id in wallet.cards:
                return wallet.wallet_id
        return None
