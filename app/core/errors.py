"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
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
    retry_after: float
    blockchain: str
    url: str
    setting: str
    backend: str
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
    """Raised when client input validation fails."""


class ConfigurationAppError(AppError):
    """Raised when static configuration is invalid. Fatal at startup."""


class StoreUnavailableError(AppError):
    """Raised by rate limit history backends when reads/writes fail.

    Never surfaced to clients: stores recover by treating history as empty.
    """


class TokenTamperedError(AppError):
    """Raised when a client-held history token fails verification or decoding.

    Never surfaced to clients: the signed store collapses it to empty history.
    """


class UpstreamAppError(AppError):
    """Raised when an upstream data provider call fails."""
