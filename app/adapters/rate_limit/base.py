"""Rate limit records and the store interface.

The limiter depends on this abstraction (not the concrete implementation)
so the record store can be swapped (e.g., a Redis-backed atomic counter for
multi-instance deployments) without touching the counting algorithm.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitConfig:
    """Static policy for one route group.

    Attributes:
        window_ms: Window duration in milliseconds.
        max_requests: Accepted requests per window per client.
    """

    window_ms: int
    max_requests: int


@dataclass(frozen=True)
class RateLimitKey:
    """Identity of a counter: one client within one route group."""

    client_identifier: str
    route_group: str


@dataclass(frozen=True)
class RateLimitRecord:
    """Request count for one key within its current window.

    Attributes:
        count: Accepted requests in the current window (always >= 1).
        window_reset_at: Epoch milliseconds at which the window expires.
    """

    count: int
    window_reset_at: int

    def is_expired(self, now: int) -> bool:
        return now > self.window_reset_at


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a check-and-consume call.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window for the route group.
        remaining: Requests left in the current window (0 when denied).
        reset_at: Epoch milliseconds when the current window resets.
        retry_after_seconds: Seconds to wait before retrying, only when denied.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None = None

    @property
    def reset_at_seconds(self) -> int:
        """Window reset as UNIX epoch seconds (rounded up)."""
        return math.ceil(self.reset_at / 1000)


class AbstractRateLimitStore(ABC):
    """Interface for rate limit record stores.

    Implementations must make ``compare_and_set`` and conditional ``delete``
    atomic with respect to each other.
    """

    @abstractmethod
    def get(self, key: RateLimitKey) -> RateLimitRecord | None:
        """Return the stored record for key, or None."""
        raise NotImplementedError

    @abstractmethod
    def compare_and_set(
        self,
        key: RateLimitKey,
        expected: RateLimitRecord | None,
        new: RateLimitRecord,
    ) -> bool:
        """Store ``new`` only if the current value equals ``expected``.

        Args:
            key: Record key.
            expected: Value previously read (None means "absent").
            new: Replacement record.

        Returns:
            True if the swap happened, False if another writer got there first.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: RateLimitKey, expected: RateLimitRecord | None = None) -> bool:
        """Remove key; with ``expected``, only if it still holds that value.

        Returns:
            True if a record was removed.
        """
        raise NotImplementedError

    @abstractmethod
    def items(self) -> list[tuple[RateLimitKey, RateLimitRecord]]:
        """Return a point-in-time snapshot of all records."""
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        raise NotImplementedError
