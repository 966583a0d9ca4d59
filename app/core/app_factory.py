"""Application factory for the FastAPI app.

Centralizes app construction (settings, limiters, middleware, handlers,
routers) so tests can build isolated instances with their own clock,
counters and upstream transport.
"""

from __future__ import annotations

from fastapi import FastAPI

from app.adapters.discogs.client import DiscogsClient
from app.api.routes import discogs_router, health_router
from app.core.config import Settings, settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import (
    build_discogs_limiter,
    build_gateway_limiter,
    rate_limit_middleware,
)
from app.services.rate_limiter import Clock


def build_discogs_client(app_settings: Settings) -> DiscogsClient:
    cfg = app_settings.discogs
    return DiscogsClient(
        cfg.token,
        base_url=cfg.base_url,
        user_agent=cfg.user_agent,
        timeout_seconds=cfg.timeout_seconds,
    )


def create_app(
    app_settings: Settings | None = None,
    *,
    clock: Clock | None = None,
    discogs_client: DiscogsClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to use; defaults to the global settings.
        clock: Millisecond clock shared by both limiters (tests only).
        discogs_client: Pre-built Discogs client (tests inject a mock transport).

    Returns:
        Configured FastAPI app.

    Raises:
        ConfigurationAppError: If a rate limit rule is invalid. Startup must
            not continue with a silently dropped rule.
    """
    cfg = app_settings or settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Vinylogix Gateway",
        description=(
            "Rate limiting gateway for Vinylogix: throttles payment and "
            "invitation endpoints per client and proxies Discogs catalog "
            "lookups behind a local quota."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
    )

    app.state.settings = cfg
    app.state.gateway_limiter = (
        build_gateway_limiter(cfg, clock=clock) if cfg.app.rate_limit_enabled else None
    )
    app.state.discogs_limiter = build_discogs_limiter(cfg, clock=clock)
    app.state.discogs_client = discogs_client or build_discogs_client(cfg)

    # Middleware: the last registered runs first, so request ids wrap throttling
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(discogs_router)
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
