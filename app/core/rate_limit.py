"""Rate limiting for the HTTP layer.

This module wires the fixed-window limiter into the two enforcement points:

- Gateway filter: ``rate_limit_middleware`` throttles requests whose path
  falls under a configured prefix (payments, invitations) and annotates
  accepted responses with X-RateLimit-* headers.
- Upstream proxy: the Discogs route consumes from its own limiter (single
  route group) before calling the third-party API.

Both keep their limiter on ``app.state`` so tests can swap in an isolated
store and a deterministic clock.
"""

from __future__ import annotations

import hashlib
import logging

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from app.adapters.rate_limit.base import RateLimitConfig, RateLimitDecision
from app.core.config import Settings
from app.services.rate_limiter import Clock, FixedWindowRateLimiter

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"
DISCOGS_ROUTE_GROUP = "discogs"
RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."


def get_client_identifier(request: Request) -> str:
    """Return the caller's address from X-Forwarded-For.

    Only the first (client-most) entry is used. Requests without the header
    share the "unknown" bucket.
    """

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        client = forwarded_for.split(",")[0].strip()
        if client:
            return client
    return UNKNOWN_CLIENT


def hash_client_identifier(client_identifier: str) -> str:
    """Hash the client identifier for logging without exposing addresses."""
    return hashlib.sha256(client_identifier.encode()).hexdigest()[:16]


def build_gateway_limiter(app_settings: Settings, clock: Clock | None = None) -> FixedWindowRateLimiter:
    """Build the gateway limiter from the configured prefix rules.

    Raises:
        ConfigurationAppError: If any configured rule is invalid.
    """

    limiter = FixedWindowRateLimiter(
        clock=clock,
        sweep_interval_ms=app_settings.app.rate_limit_sweep_interval_seconds * 1000,
    )
    limiter.configure_limits(
        {
            pattern: RateLimitConfig(window_ms=rule.window_ms, max_requests=rule.max_requests)
            for pattern, rule in app_settings.app.rate_limit_rules.items()
        }
    )
    return limiter


def build_discogs_limiter(app_settings: Settings, clock: Clock | None = None) -> FixedWindowRateLimiter:
    """Build the Discogs proxy limiter (one implicit route group)."""

    cfg = app_settings.discogs
    limiter = FixedWindowRateLimiter(
        clock=clock,
        sweep_interval_ms=app_settings.app.rate_limit_sweep_interval_seconds * 1000,
    )
    limiter.configure_limits(
        {
            DISCOGS_ROUTE_GROUP: RateLimitConfig(
                window_ms=cfg.rate_limit_window_seconds * 1000,
                max_requests=cfg.rate_limit_requests,
            )
        }
    )
    return limiter


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    """Informational headers describing the caller's current budget."""

    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(decision.reset_at_seconds),
    }


def gateway_throttled_response(decision: RateLimitDecision) -> JSONResponse:
    """429 response used by the gateway filter."""

    retry_after = decision.retry_after_seconds or 0
    headers = {"Retry-After": str(retry_after), **rate_limit_headers(decision)}
    headers["X-RateLimit-Remaining"] = "0"
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too Many Requests",
            "message": RATE_LIMIT_MESSAGE,
            "retryAfter": retry_after,
        },
        headers=headers,
    )


def proxy_throttled_response(decision: RateLimitDecision) -> JSONResponse:
    """429 response used by the upstream proxy (no message/limit fields)."""

    return JSONResponse(
        status_code=429,
        content={"error": RATE_LIMIT_MESSAGE},
        headers={
            "Retry-After": str(decision.retry_after_seconds or 0),
            "X-RateLimit-Remaining": "0",
        },
    )


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """HTTP middleware enforcing the gateway rate limit rules.

    Paths that match no configured prefix are passed through untouched: no
    headers are added and no counter is created.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: A 429 response when the caller is over budget, otherwise the
            handler's response with X-RateLimit-* headers added.
    """

    limiter: FixedWindowRateLimiter | None = getattr(request.app.state, "gateway_limiter", None)
    if limiter is None:
        return await call_next(request)

    route_group = limiter.match_route_group(request.url.path)
    if route_group is None:
        return await call_next(request)

    client = get_client_identifier(request)
    decision = limiter.consume(client, route_group)
    log_extra = {
        "client_hash": hash_client_identifier(client),
        "route_group": route_group,
        "method": request.method,
        "limit": decision.limit,
        "remaining": decision.remaining,
    }

    if not decision.allowed:
        logger.warning(
            "rate_limit.exceeded",
            extra={**log_extra, "retry_after_s": decision.retry_after_seconds},
        )
        return gateway_throttled_response(decision)

    logger.debug("rate_limit.allowed", extra=log_extra)
    response: Response = await call_next(request)
    response.headers.update(rate_limit_headers(decision))
    return response
