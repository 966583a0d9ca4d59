"""In-memory rate limit record store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading

from app.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    RateLimitKey,
    RateLimitRecord,
)


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Dict-backed record store guarded by a single lock.

    Important:
        State lives in process memory and is lost on restart. If the API runs
        with multiple workers (e.g., multiple Uvicorn/Gunicorn workers), each
        worker keeps its own independent counters.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: dict[RateLimitKey, RateLimitRecord] = {}

    def get(self, key: RateLimitKey) -> RateLimitRecord | None:
        with self._lock:
            return self._records.get(key)

    def compare_and_set(
        self,
        key: RateLimitKey,
        expected: RateLimitRecord | None,
        new: RateLimitRecord,
    ) -> bool:
        with self._lock:
            if self._records.get(key) != expected:
                return False
            self._records[key] = new
            return True

    def delete(self, key: RateLimitKey, expected: RateLimitRecord | None = None) -> bool:
        with self._lock:
            current = self._records.get(key)
            if current is None:
                return False
            if expected is not None and current != expected:
                return False
            del self._records[key]
            return True

    def items(self) -> list[tuple[RateLimitKey, RateLimitRecord]]:
        with self._lock:
            return list(self._records.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
