"""Fixed-window rate limiter with a prefix-routed policy table.

One limiter instance serves one enforcement point. The gateway filter
configures it with several path prefixes; the Discogs proxy configures it
with a single fixed route group. Counting is identical in both.

Allow/deny outcomes are returned as ``RateLimitDecision`` values. The only
exception raised here is ``ConfigurationAppError`` for an invalid rule.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import replace
from types import MappingProxyType
from typing import Callable, Mapping

from app.adapters.rate_limit.base import (
    AbstractRateLimitStore,
    RateLimitConfig,
    RateLimitDecision,
    RateLimitKey,
    RateLimitRecord,
)
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

DEFAULT_SWEEP_INTERVAL_MS = 5 * 60 * 1000


def wall_clock_ms() -> int:
    """Current UNIX time in milliseconds."""
    return int(time.time() * 1000)


def _prefix_matches(pattern: str, path: str) -> bool:
    """Match a prefix on path-segment boundaries."""
    if path == pattern:
        return True
    base = pattern.rstrip("/")
    return path.startswith(base + "/")


class FixedWindowRateLimiter:
    """Counts requests per (client, route group) in fixed windows.

    A window opens on the first request for a key and lasts ``window_ms``.
    Once it has passed, the next request starts a new window with count 1.
    Denied requests do not consume quota and never extend the window.

    Args:
        store: Record store; defaults to a private in-memory store.
        clock: Returns UNIX time in milliseconds; injectable for tests.
        sweep_interval_ms: Minimum spacing between expired-record sweeps.
    """

    def __init__(
        self,
        *,
        store: AbstractRateLimitStore | None = None,
        clock: Clock | None = None,
        sweep_interval_ms: int = DEFAULT_SWEEP_INTERVAL_MS,
    ) -> None:
        if sweep_interval_ms < 1:
            raise ConfigurationAppError(
                code="invalid_sweep_interval",
                message="sweep_interval_ms must be >= 1",
            )
        self._store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock or wall_clock_ms
        self._sweep_interval_ms = sweep_interval_ms
        self._last_sweep = self._clock()
        self._rules: dict[str, RateLimitConfig] = {}
        # Longest first so the most specific prefix wins.
        self._patterns: list[str] = []

    @property
    def rules(self) -> Mapping[str, RateLimitConfig]:
        return MappingProxyType(self._rules)

    @property
    def store(self) -> AbstractRateLimitStore:
        return self._store

    def now(self) -> int:
        return self._clock()

    def configure_limits(self, rules: Mapping[str, RateLimitConfig]) -> None:
        """Install the static policy table.

        Args:
            rules: Route-group pattern -> policy.

        Raises:
            ConfigurationAppError: If any pattern is empty or any policy has a
                non-positive window or request budget. Nothing is installed.
        """
        validated: dict[str, RateLimitConfig] = {}
        for pattern, config in rules.items():
            if not pattern:
                raise ConfigurationAppError(
                    code="invalid_rate_limit_rule",
                    message="Rate limit rule pattern must be a non-empty string",
                )
            if config.max_requests < 1 or config.window_ms < 1:
                raise ConfigurationAppError(
                    code="invalid_rate_limit_rule",
                    message=(
                        f"Rate limit rule '{pattern}' must have positive "
                        "window_ms and max_requests"
                    ),
                    details={
                        "pattern": pattern,
                        "context": {
                            "window_ms": config.window_ms,
                            "max_requests": config.max_requests,
                        },
                    },
                )
            validated[pattern] = config

        self._rules = validated
        self._patterns = sorted(validated, key=len, reverse=True)
        logger.info(
            "rate_limit.configured",
            extra={
                "rules": {
                    pattern: {"window_ms": c.window_ms, "max_requests": c.max_requests}
                    for pattern, c in validated.items()
                },
            },
        )

    def match_route_group(self, path: str) -> str | None:
        """Return the most specific configured pattern prefixing path.

        Returns:
            The matching pattern, or None if the path is not rate limited.
        """
        for pattern in self._patterns:
            if _prefix_matches(pattern, path):
                return pattern
        return None

    def config_for(self, route_group: str) -> RateLimitConfig:
        return self._rules[route_group]

    def check_and_consume(
        self,
        client_identifier: str,
        route_group: str,
        config: RateLimitConfig,
        now: int,
    ) -> RateLimitDecision:
        """Check the key's budget and consume one unit if available.

        The read-modify-write runs as a compare-and-set loop against the
        store, so concurrent callers on one key never both act on a stale
        count. Nothing here awaits or blocks on I/O.
        """
        key = RateLimitKey(client_identifier, route_group)

        while True:
            record = self._store.get(key)

            if record is None or record.is_expired(now):
                fresh = RateLimitRecord(count=1, window_reset_at=now + config.window_ms)
                if self._store.compare_and_set(key, record, fresh):
                    return RateLimitDecision(
                        allowed=True,
                        limit=config.max_requests,
                        remaining=config.max_requests - 1,
                        reset_at=fresh.window_reset_at,
                    )
                continue

            if record.count >= config.max_requests:
                return RateLimitDecision(
                    allowed=False,
                    limit=config.max_requests,
                    remaining=0,
                    reset_at=record.window_reset_at,
                    retry_after_seconds=max(
                        0, math.ceil((record.window_reset_at - now) / 1000)
                    ),
                )

            updated = replace(record, count=record.count + 1)
            if self._store.compare_and_set(key, record, updated):
                return RateLimitDecision(
                    allowed=True,
                    limit=config.max_requests,
                    remaining=config.max_requests - updated.count,
                    reset_at=updated.window_reset_at,
                )

    def consume(self, client_identifier: str, route_group: str) -> RateLimitDecision:
        """Consume one unit for a configured route group at the current time.

        Raises:
            KeyError: If route_group has no configured rule.
        """
        config = self._rules[route_group]
        now = self._clock()
        self.maybe_sweep(now)
        return self.check_and_consume(client_identifier, route_group, config, now)

    def sweep_expired(self, now: int) -> int:
        """Remove records whose window ended before now.

        Returns:
            Number of records removed.
        """
        removed = 0
        for key, record in self._store.items():
            if record.window_reset_at < now and self._store.delete(key, expected=record):
                removed += 1
        return removed

    def maybe_sweep(self, now: int) -> bool:
        """Sweep expired records at most once per sweep interval."""
        if now - self._last_sweep < self._sweep_interval_ms:
            return False
        self._last_sweep = now
        removed = self.sweep_expired(now)
        logger.debug(
            "rate_limit.sweep",
            extra={"removed": removed, "remaining_records": len(self._store)},
        )
        return True
