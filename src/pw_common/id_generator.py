"""Snowflake-style ids for withdrawal requests.

Ids are decimal strings that sort by creation time. ID_MACHINE_ID must
differ between API worker processes sharing one database.
"""

import threading
import time

from config.settings import settings


class SnowflakeIdGenerator:
    """Layout (63 bits): 41 ms timestamp | 10 machine_id | 12 sequence."""

    _EPOCH_MS = 1_735_689_600_000  # 2025-01-01T00:00:00Z
    _MACHINE_BITS = 10
    _SEQUENCE_BITS = 12
    _MAX_SEQUENCE = (1 << _SEQUENCE_BITS) - 1

    def __init__(self, machine_id: int = 0) -> None:
        if not (0 <= machine_id < (1 << self._MACHINE_BITS)):
            raise ValueError(f"machine_id must be 0-{(1 << self._MACHINE_BITS) - 1}")
        self._machine_id = machine_id
        self._sequence = 0
        self._last_ms = -1
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            # A wall clock stepping backwards must not reissue old ids
            now_ms = max(self._now_ms(), self._last_ms)
            if now_ms == self._last_ms:
                self._sequence = (self._sequence + 1) & self._MAX_SEQUENCE
                if self._sequence == 0:
                    now_ms = self._wait_after(now_ms)
            else:
                self._sequence = 0
            self._last_ms = now_ms
            value = (
                (now_ms - self._EPOCH_MS) << (self._MACHINE_BITS + self._SEQUENCE_BITS)
                | self._machine_id << self._SEQUENCE_BITS
                | self._sequence
            )
            return str(value)

    @staticmethod
    def _now_ms() -> int:
        return time.time_ns() // 1_000_000

    def _wait_after(self, last_ms: int) -> int:
        now_ms = self._now_ms()
        while now_ms <= last_ms:
            now_ms = self._now_ms()
        return now_ms


_default_generator = SnowflakeIdGenerator(machine_id=settings.ID_MACHINE_ID)


def generate_id(prefix: str = "") -> str:
    """Next id from the process-wide generator, e.g. generate_id("wd_")."""
    return f"{prefix}{_default_generator.next_id()}"
