from __future__ import annotations

from app.api.routes.discogs import router as discogs_router
from app.api.routes.health import router as health_router

__all__ = ["discogs_router", "health_router"]
