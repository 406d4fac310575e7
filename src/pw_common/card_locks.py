"""Per-card serialization boundary.

Each card is an independent partition: operations on the same card are
mutually exclusive inside this process, operations on different cards never
wait on each other. Cross-process exclusion is the repository's job
(pg_advisory_xact_lock); this registry keeps a single worker from queueing
unbounded work on one hot card.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from config.settings import settings
from src.pw_common.errors import CardBusyError

logger = logging.getLogger(__name__)


class CardLockRegistry:
    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self._timeout = timeout_seconds
        self._card_locks: dict[str, asyncio.Lock] = {}
        # holder plus waiters per card; the lock is dropped when this reaches 0
        self._users: dict[str, int] = {}

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def tracked_cards(self) -> int:
        return len(self._card_locks)

    def is_locked(self, card_id: str) -> bool:
        lock = self._card_locks.get(card_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, card_id: str) -> AsyncIterator[None]:
        """Acquire the card's lock with a bounded wait; raise CardBusyError on timeout."""
        lock = self._card_locks.setdefault(card_id, asyncio.Lock())
        self._users[card_id] = self._users.get(card_id, 0) + 1
        try:
            try:
                async with asyncio.timeout(self._timeout):
                    await lock.acquire()
            except TimeoutError:
                logger.warning("Card lock timeout: card=%s after %.2fs", card_id, self._timeout)
                raise CardBusyError(card_id, self._timeout) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[card_id] -= 1
            if self._users[card_id] == 0:
                del self._users[card_id]
                del self._card_locks[card_id]


# Process-wide registry: every writer of a card must share the same locks
card_locks = CardLockRegistry(settings.CARD_LOCK_TIMEOUT_SECONDS)
