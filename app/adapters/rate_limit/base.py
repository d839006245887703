"""Rate limiter interfaces.

The API depends on these abstractions (not a concrete store) so the request
history can live on the server (memory, JSON file) or on the client (signed
token) without changing the admission logic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass
from typing import Any

from app.core.errors import ConfigurationAppError

# Integer epoch-second timestamps, one entry per recorded request, in arrival order.
TimestampHistory = list[int]


@dataclass(frozen=True)
class QuotaTier:
    """One quota rule: at most ``limit`` requests per trailing ``period_seconds``.

    Raises:
        ConfigurationAppError: If limit or period_seconds are not positive.
    """

    limit: int
    period_seconds: int

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ConfigurationAppError(
                code="invalid_quota_limit",
                message="Quota tier limit must be >= 1",
                details={"setting": "tiers"},
            )
        if self.period_seconds < 1:
            raise ConfigurationAppError(
                code="invalid_quota_period",
                message="Quota tier period must be >= 1 second",
                details={"setting": "tiers"},
            )

    @property
    def label(self) -> str:
        """Human-readable period name used in rejection messages."""
        named = {60: "minute", 3600: "hour", 86400: "day"}
        return named.get(self.period_seconds, f"{self.period_seconds} seconds")


@dataclass(frozen=True)
class QuotaStats:
    """Derived usage metadata for one tier.

    Attributes:
        count: Requests recorded within the trailing window.
        remaining: ``max(0, limit - count)``.
        reset_at: UNIX epoch seconds of the next period-aligned boundary.
    """

    count: int
    remaining: int
    reset_at: int


@dataclass(frozen=True)
class SignedToken:
    """Client-held history: encoded payload plus its MAC."""

    payload: str
    signature: str


@dataclass
class ClientContext:
    """Per-request view of a client.

    Attributes:
        identity: Lookup key for server-side stores (e.g. ``ip:1.2.3.4``).
        token: History token presented by the client (signed store only).
            The signed store replaces it with the freshly issued token on write.
    """

    identity: str
    token: SignedToken | None = None


class AbstractClientStateStore(ABC):
    """Read/write one client's timestamp history.

    Implementations prune entries older than the retention horizon and never
    raise on backend failure: unreadable history is reported and treated as
    empty.
    """

    @abstractmethod
    def read(self, context: ClientContext) -> TimestampHistory:
        """Return the client's current history (empty if unknown)."""
        raise NotImplementedError

    @abstractmethod
    def write(self, context: ClientContext, history: TimestampHistory) -> Any:
        """Replace the client's history.

        Returns:
            An implementation-specific result (e.g. the issued SignedToken).
        """
        raise NotImplementedError

    def lock(self, context: ClientContext) -> AbstractContextManager[Any]:
        """Context manager serializing read-modify-write cycles for a client.

        Stores without shared mutable state need no lock.
        """
        return nullcontext()
