"""Discogs catalog proxy.

Keeps the Discogs token server-side and shields the shared upstream quota
with a per-client local budget that sits below Discogs' own limit.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from app.adapters.discogs.client import DiscogsClient
from app.core.errors import ConfigurationAppError, UpstreamAppError
from app.core.rate_limit import (
    DISCOGS_ROUTE_GROUP,
    get_client_identifier,
    hash_client_identifier,
    proxy_throttled_response,
)
from app.services.rate_limiter import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Discogs"])


def get_discogs_client(request: Request) -> DiscogsClient:
    return request.app.state.discogs_client


def get_discogs_limiter(request: Request) -> FixedWindowRateLimiter:
    return request.app.state.discogs_limiter


@router.get("/api/discogs/{path:path}")
async def proxy_discogs(
    path: str,
    request: Request,
    client: DiscogsClient = Depends(get_discogs_client),
    limiter: FixedWindowRateLimiter = Depends(get_discogs_limiter),
) -> JSONResponse:
    """Forward a GET request to the Discogs API.

    The local budget is checked first; a throttled caller never reaches
    Discogs. Accepted calls relay the upstream JSON and status with both the
    local and the upstream remaining quota.

    Args:
        path: Upstream path (everything after /api/discogs/).
        request: Incoming request (client identity and query string).
        client: Configured Discogs client.
        limiter: Proxy rate limiter.

    Returns:
        JSONResponse: Relayed upstream body, or an error body of the form
            {"error": "..."}.
    """
    client_id = get_client_identifier(request)
    decision = limiter.consume(client_id, DISCOGS_ROUTE_GROUP)

    if not decision.allowed:
        logger.warning(
            "discogs.proxy.rate_limited",
            extra={
                "client_hash": hash_client_identifier(client_id),
                "retry_after_s": decision.retry_after_seconds,
            },
        )
        return proxy_throttled_response(decision)

    local_remaining = {"X-RateLimit-Remaining": str(decision.remaining)}
    query = request.url.query

    logger.info(
        "discogs.proxy.request",
        extra={"method": "GET", "path": path, "query": query},
    )

    try:
        upstream = await client.fetch(path, query)
    except ConfigurationAppError as exc:
        return JSONResponse(status_code=500, content={"error": exc.message})
    except UpstreamAppError as exc:
        return JSONResponse(
            status_code=exc.http_status,
            content={"error": exc.message},
            headers=local_remaining,
        )

    return JSONResponse(
        status_code=upstream.status_code,
        content=upstream.data,
        headers={
            **local_remaining,
            "X-Discogs-Ratelimit-Remaining": upstream.ratelimit_remaining or "unknown",
            "Cache-Control": request.app.state.settings.discogs.cache_control,
        },
    )
