"""Per-request admission gate over a client state store."""

from __future__ import annotations

import time
from typing import Any, Callable, Sequence

from app.adapters.rate_limit import window
from app.adapters.rate_limit.base import (
    AbstractClientStateStore,
    ClientContext,
    QuotaStats,
    QuotaTier,
)


class RateLimiter:
    """Sliding-window rate limiter bound to one client for one request.

    The limiter is store-agnostic: it reads the client's history from the
    configured ``AbstractClientStateStore`` and delegates counting to
    ``app.adapters.rate_limit.window``.

    Typical flow in a route:
        1. ``reserve(tiers)`` before doing any work. Checking every tier and
           recording the request happen as one step under the store's
           per-client lock, so concurrent requests from the same client
           cannot both take the last slot.
        2. ``release()`` if the request turns out not to count (e.g. the
           upstream fetch failed).
        3. ``get_stats(tier)`` to populate response headers.

    ``is_allowed``/``first_exceeded`` and ``increment`` remain available as
    separate read-only check and record steps.
    """

    def __init__(
        self,
        store: AbstractClientStateStore,
        context: ClientContext,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._context = context
        self._clock = clock
        self._incremented = False
        self._reserved_at: int | None = None
        self.last_write: Any = None

    @property
    def context(self) -> ClientContext:
        return self._context

    @property
    def incremented(self) -> bool:
        return self._incremented

    def _now(self) -> int:
        return int(self._clock())

    def is_allowed(self, tier: QuotaTier) -> bool:
        """Whether one more request fits under ``tier``. Read-only."""
        history = self._store.read(self._context)
        return window.is_allowed(history, tier.limit, tier.period_seconds, self._now())

    def first_exceeded(self, tiers: Sequence[QuotaTier]) -> QuotaTier | None:
        """Evaluate tiers in order and return the first one that rejects.

        Tiers after a rejecting one are not consulted. No state is mutated.

        Returns:
            The rejecting tier, or None when every tier admits the request.
        """
        for tier in tiers:
            if not self.is_allowed(tier):
                return tier
        return None

    def _record(self, history: list[int], now: int) -> Any:
        history.append(now)
        self.last_write = self._store.write(self._context, history)
        self._incremented = True
        return self.last_write

    def reserve(self, tiers: Sequence[QuotaTier]) -> QuotaTier | None:
        """Check every tier and record the request atomically.

        Under the store's per-client lock the history is read once, tiers are
        evaluated in order, and ``now`` is appended only if all of them admit
        the request.

        Returns:
            The first rejecting tier (nothing recorded), or None when the
            request was admitted and recorded.

        Raises:
            RuntimeError: If the request was already recorded.
        """
        if self._incremented:
            raise RuntimeError("request already recorded")

        with self._store.lock(self._context):
            now = self._now()
            history = self._store.read(self._context)
            for tier in tiers:
                if not window.is_allowed(history, tier.limit, tier.period_seconds, now):
                    return tier
            self._record(history, now)
            self._reserved_at = now
        return None

    def release(self) -> Any:
        """Undo a reservation: drop the entry ``reserve`` appended.

        Returns:
            The store's write result.

        Raises:
            RuntimeError: If there is no reservation to release.
        """
        if self._reserved_at is None:
            raise RuntimeError("no reservation to release")

        with self._store.lock(self._context):
            history = self._store.read(self._context)
            for index in range(len(history) - 1, -1, -1):
                if history[index] == self._reserved_at:
                    del history[index]
                    break
            self.last_write = self._store.write(self._context, history)

        self._reserved_at = None
        self._incremented = False
        return self.last_write

    def increment(self) -> Any:
        """Record the current request: read, append now, prune, write.

        The cycle runs under the store's per-client lock. Calling it more
        than once for the same request is a programming error.

        Returns:
            The store's write result (the issued SignedToken for the signed store).

        Raises:
            RuntimeError: If the request was already recorded.
        """
        if self._incremented:
            raise RuntimeError("increment() already called for this request")

        with self._store.lock(self._context):
            return self._record(self._store.read(self._context), self._now())

    def get_stats(self, tier: QuotaTier) -> QuotaStats:
        """Usage metadata for ``tier`` as of now. Read-only."""
        history = self._store.read(self._context)
        return window.window_stats(history, tier.limit, tier.period_seconds, self._now())
