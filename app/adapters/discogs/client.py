"""Discogs API client used by the catalog proxy route."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from app.core.errors import ConfigurationAppError, UpstreamAppError

logger = logging.getLogger(__name__)

UPSTREAM_RATELIMIT_HEADER = "X-Discogs-Ratelimit-Remaining"


@dataclass(frozen=True)
class DiscogsResponse:
    """Successful upstream response.

    Attributes:
        status_code: Upstream HTTP status (2xx).
        data: Decoded JSON body.
        ratelimit_remaining: Upstream's own remaining quota, when reported.
    """

    status_code: int
    data: Any
    ratelimit_remaining: str | None


class DiscogsClient:
    """Thin async client for authenticated Discogs GET requests.

    Uses a short-lived ``httpx.AsyncClient`` per call with an explicit
    timeout. The awaited call is not shielded, so cancelling the caller
    cancels the upstream request.
    """

    def __init__(
        self,
        token: str | None,
        *,
        base_url: str = "https://api.discogs.com",
        user_agent: str = "VinylogixApp/1.0",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: Discogs personal access token; None leaves the client
                unconfigured.
            base_url: Discogs API base URL.
            user_agent: User-Agent header (Discogs rejects anonymous agents).
            timeout_seconds: Upstream timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._token = token or None
        self.base_url = base_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self._token is not None

    def build_url(self, path: str, query: str = "") -> str:
        url = f"{self.base_url}/{path.lstrip('/')}"
        return f"{url}?{query}" if query else url

    async def fetch(self, path: str, query: str = "") -> DiscogsResponse:
        """GET a Discogs resource and decode its JSON body.

        Args:
            path: Upstream path, e.g. "database/search" or "releases/249504".
            query: Raw query string to forward (without the leading "?").

        Returns:
            DiscogsResponse with the decoded body.

        Raises:
            ConfigurationAppError: If no token is configured.
            UpstreamAppError: On timeout, transport failure, non-2xx status or
                a body that is not JSON.
        """
        if not self.is_configured:
            logger.error("discogs.token_missing")
            raise ConfigurationAppError(
                code="discogs_not_configured",
                message="Discogs API is not configured",
                details={"hint": "Set DISCOGS_TOKEN in the server environment"},
            )

        headers = {
            "User-Agent": self.user_agent,
            "Authorization": f"Discogs token={self._token}",
        }
        url = self.build_url(path, query)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            logger.error(
                "discogs.timeout",
                extra={"path": path, "timeout_s": self.timeout_seconds},
            )
            raise self._unavailable(path) from exc
        except httpx.RequestError as exc:
            logger.error(
                "discogs.request_error",
                extra={"path": path, "error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise self._unavailable(path) from exc

        if not response.is_success:
            logger.error(
                "discogs.api_error",
                extra={
                    "path": path,
                    "upstream_status": response.status_code,
                    "upstream_error": response.text[:500],
                },
            )
            raise UpstreamAppError(
                code="discogs_api_error",
                message=f"Discogs API error: {response.reason_phrase}",
                details={
                    "http_status": response.status_code,
                    "upstream_status": response.status_code,
                    "path": path,
                },
            )

        try:
            data = response.json()
        except ValueError as exc:
            logger.error(
                "discogs.invalid_json",
                extra={"path": path, "upstream_status": response.status_code},
            )
            raise self._unavailable(path) from exc

        return DiscogsResponse(
            status_code=response.status_code,
            data=data,
            ratelimit_remaining=response.headers.get(UPSTREAM_RATELIMIT_HEADER),
        )

    @staticmethod
    def _unavailable(path: str) -> UpstreamAppError:
        return UpstreamAppError(
            code="discogs_unavailable",
            message="Failed to fetch from Discogs",
            details={"http_status": 500, "path": path},
        )
