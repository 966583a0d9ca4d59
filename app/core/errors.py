"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Rate limit denials are not errors: the limiter returns them as values
(``RateLimitDecision.allowed is False``). Only misconfiguration and upstream
I/O failures travel as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    upstream_status: int
    retry_after: float
    pattern: str
    path: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when request input validation fails."""


class ConfigurationAppError(AppError):
    """Raised when a rule definition or required secret is missing/invalid."""


class UpstreamAppError(AppError):
    """Raised when a proxied third-party call fails.

    ``details["http_status"]`` carries the status to surface to the caller.
    """

    @property
    def http_status(self) -> int:
        if self.details and "http_status" in self.details:
            return int(self.details["http_status"])
        return 500
