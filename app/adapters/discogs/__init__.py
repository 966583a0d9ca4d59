from __future__ import annotations

from app.adapters.discogs.client import DiscogsClient, DiscogsResponse

__all__ = ["DiscogsClient", "DiscogsResponse"]
