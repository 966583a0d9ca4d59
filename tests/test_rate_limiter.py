"""Unit tests for the fixed-window rate limiter."""

import threading

import pytest

from app.adapters.rate_limit.base import RateLimitConfig, RateLimitKey
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.core.errors import ConfigurationAppError
from app.services.rate_limiter import FixedWindowRateLimiter


CONFIG = RateLimitConfig(window_ms=60_000, max_requests=3)


@pytest.fixture
def store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
def limiter(store: InMemoryRateLimitStore) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter(store=store, clock=lambda: 0)


class TestCheckAndConsume:
    def test_allows_up_to_limit_then_denies(self, limiter: FixedWindowRateLimiter) -> None:
        decisions = [limiter.check_and_consume("A", "g", CONFIG, now=t) for t in (0, 1, 2)]

        assert [d.allowed for d in decisions] == [True, True, True]
        assert [d.remaining for d in decisions] == [2, 1, 0]
        assert all(d.reset_at == 60_000 for d in decisions)

        denied = limiter.check_and_consume("A", "g", CONFIG, now=3)
        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.reset_at == 60_000
        assert denied.retry_after_seconds == 60

    def test_new_window_after_reset(
        self, limiter: FixedWindowRateLimiter, store: InMemoryRateLimitStore
    ) -> None:
        for t in range(5):
            limiter.check_and_consume("A", "g", CONFIG, now=t)

        decision = limiter.check_and_consume("A", "g", CONFIG, now=60_001)

        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == 120_001
        assert store.get(RateLimitKey("A", "g")).count == 1

    def test_request_at_reset_instant_is_still_in_window(
        self, limiter: FixedWindowRateLimiter
    ) -> None:
        for t in range(3):
            limiter.check_and_consume("A", "g", CONFIG, now=t)

        decision = limiter.check_and_consume("A", "g", CONFIG, now=60_000)

        assert decision.allowed is False
        assert decision.retry_after_seconds == 0

    def test_denial_does_not_mutate_record(
        self, limiter: FixedWindowRateLimiter, store: InMemoryRateLimitStore
    ) -> None:
        for t in range(3):
            limiter.check_and_consume("A", "g", CONFIG, now=t)
        before = store.get(RateLimitKey("A", "g"))

        first = limiter.check_and_consume("A", "g", CONFIG, now=10)
        second = limiter.check_and_consume("A", "g", CONFIG, now=20_000)

        assert store.get(RateLimitKey("A", "g")) == before
        assert first.reset_at == second.reset_at == before.window_reset_at

    def test_clients_are_independent(self, limiter: FixedWindowRateLimiter) -> None:
        for t in range(4):
            limiter.check_and_consume("A", "g", CONFIG, now=t)

        decision = limiter.check_and_consume("B", "g", CONFIG, now=5)

        assert decision.allowed is True
        assert decision.remaining == 2

    def test_route_groups_are_independent(self, limiter: FixedWindowRateLimiter) -> None:
        for t in range(4):
            limiter.check_and_consume("A", "/api/stripe", CONFIG, now=t)

        decision = limiter.check_and_consume("A", "/api/clients/invite", CONFIG, now=5)

        assert decision.allowed is True

    def test_concurrent_callers_never_exceed_limit(self) -> None:
        limiter = FixedWindowRateLimiter(clock=lambda: 0)
        config = RateLimitConfig(window_ms=60_000, max_requests=50)
        allowed: list[bool] = []
        lock = threading.Lock()
        barrier = threading.Barrier(16)

        def worker() -> None:
            barrier.wait()
            for _ in range(10):
                decision = limiter.check_and_consume("A", "g", config, now=100)
                with lock:
                    allowed.append(decision.allowed)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert allowed.count(True) == 50
        assert allowed.count(False) == 110


class TestConfigureLimits:
    @pytest.mark.parametrize(
        "config",
        [
            RateLimitConfig(window_ms=60_000, max_requests=0),
            RateLimitConfig(window_ms=0, max_requests=10),
            RateLimitConfig(window_ms=-1, max_requests=-5),
        ],
    )
    def test_invalid_rule_aborts(self, config: RateLimitConfig) -> None:
        limiter = FixedWindowRateLimiter()

        with pytest.raises(ConfigurationAppError) as exc_info:
            limiter.configure_limits({"/api/stripe": config})

        assert exc_info.value.code == "invalid_rate_limit_rule"
        assert dict(limiter.rules) == {}

    def test_empty_pattern_aborts(self) -> None:
        with pytest.raises(ConfigurationAppError):
            FixedWindowRateLimiter().configure_limits({"": CONFIG})

    def test_one_bad_rule_installs_nothing(self) -> None:
        limiter = FixedWindowRateLimiter()
        limiter.configure_limits({"/api/stripe": CONFIG})

        with pytest.raises(ConfigurationAppError):
            limiter.configure_limits(
                {"/api/a": CONFIG, "/api/b": RateLimitConfig(window_ms=1, max_requests=0)}
            )

        assert list(limiter.rules) == ["/api/stripe"]

    def test_rules_are_read_only(self) -> None:
        limiter = FixedWindowRateLimiter()
        limiter.configure_limits({"/api/stripe": CONFIG})

        with pytest.raises(TypeError):
            limiter.rules["/api/other"] = CONFIG  # type: ignore[index]


class TestMatchRouteGroup:
    @pytest.fixture
    def routed(self) -> FixedWindowRateLimiter:
        limiter = FixedWindowRateLimiter()
        limiter.configure_limits(
            {
                "/api/clients": RateLimitConfig(window_ms=60_000, max_requests=100),
                "/api/clients/invite": RateLimitConfig(window_ms=60_000, max_requests=10),
                "/api/stripe": RateLimitConfig(window_ms=60_000, max_requests=20),
            }
        )
        return limiter

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/api/stripe", "/api/stripe"),
            ("/api/stripe/checkout-session", "/api/stripe"),
            ("/api/clients/invite", "/api/clients/invite"),
            ("/api/clients/invite/resend", "/api/clients/invite"),
            ("/api/clients/42", "/api/clients"),
            ("/api/stripeish", None),
            ("/public/health", None),
            ("/", None),
        ],
    )
    def test_longest_prefix_wins(
        self, routed: FixedWindowRateLimiter, path: str, expected: str | None
    ) -> None:
        assert routed.match_route_group(path) == expected

    def test_no_rules_matches_nothing(self) -> None:
        assert FixedWindowRateLimiter().match_route_group("/api/stripe") is None


class TestSweep:
    def test_sweep_removes_only_expired(
        self, limiter: FixedWindowRateLimiter, store: InMemoryRateLimitStore
    ) -> None:
        limiter.check_and_consume("old", "g", CONFIG, now=0)
        limiter.check_and_consume("edge", "g", CONFIG, now=40_000)
        limiter.check_and_consume("live", "g", CONFIG, now=50_000)

        removed = limiter.sweep_expired(now=100_000)

        assert removed == 1
        assert store.get(RateLimitKey("old", "g")) is None
        assert store.get(RateLimitKey("edge", "g")) is not None
        assert store.get(RateLimitKey("live", "g")) is not None

    def test_sweep_keeps_record_at_exact_reset(
        self, limiter: FixedWindowRateLimiter, store: InMemoryRateLimitStore
    ) -> None:
        limiter.check_and_consume("A", "g", CONFIG, now=0)

        assert limiter.sweep_expired(now=60_000) == 0
        assert len(store) == 1

    def test_consume_sweeps_at_most_once_per_interval(self, clock) -> None:
        store = InMemoryRateLimitStore()
        limiter = FixedWindowRateLimiter(store=store, clock=clock, sweep_interval_ms=300_000)
        limiter.configure_limits({"g": RateLimitConfig(window_ms=1_000, max_requests=5)})

        limiter.consume("A", "g")
        clock.advance(2_000)
        limiter.consume("B", "g")

        # A expired but the sweep interval has not elapsed
        assert len(store) == 2
        assert limiter.maybe_sweep(clock()) is False

        clock.advance(300_000)
        limiter.consume("C", "g")

        assert store.get(RateLimitKey("A", "g")) is None
        assert store.get(RateLimitKey("B", "g")) is None
        assert store.get(RateLimitKey("C", "g")) is not None


class TestConsume:
    def test_uses_injected_clock(self, clock) -> None:
        limiter = FixedWindowRateLimiter(clock=clock)
        limiter.configure_limits({"g": RateLimitConfig(window_ms=1_000, max_requests=1)})

        first = limiter.consume("A", "g")
        assert first.allowed is True
        assert first.reset_at == clock() + 1_000

        assert limiter.consume("A", "g").allowed is False

        clock.advance(1_001)
        assert limiter.consume("A", "g").allowed is True

    def test_unknown_route_group_raises(self) -> None:
        with pytest.raises(KeyError):
            FixedWindowRateLimiter().consume("A", "missing")

    def test_invalid_sweep_interval(self) -> None:
        with pytest.raises(ConfigurationAppError):
            FixedWindowRateLimiter(sweep_interval_ms=0)
