"""Sliding-window counting shared by every history store.

All functions are pure: the result depends only on the arguments.
"""

from __future__ import annotations

from typing import Iterable

from app.adapters.rate_limit.base import QuotaStats


def count_in_window(history: Iterable[int], period_seconds: int, now: int) -> int:
    """Count timestamps strictly newer than ``now - period_seconds``."""
    window_start = now - period_seconds
    return sum(1 for ts in history if ts > window_start)


def is_allowed(history: Iterable[int], limit: int, period_seconds: int, now: int) -> bool:
    """Whether one more request fits under ``limit``.

    The pending request is not part of ``history`` yet, so with ``limit=N``
    the Nth request in a window is the last one admitted.
    """
    return count_in_window(history, period_seconds, now) < limit


def next_reset(period_seconds: int, now: int) -> int:
    """Next wall-clock boundary aligned to the period (``ceil(now / period) * period``)."""
    return -(-now // period_seconds) * period_seconds


def window_stats(history: Iterable[int], limit: int, period_seconds: int, now: int) -> QuotaStats:
    """Build QuotaStats for one tier.

    ``reset_at`` is calendar-aligned rather than derived from the oldest
    entry, so it may be later than the moment the window actually frees up.
    """
    count = count_in_window(history, period_seconds, now)
    return QuotaStats(
        count=count,
        remaining=max(0, limit - count),
        reset_at=next_reset(period_seconds, now),
    )


def prune(
    history: Iterable[int],
    retention_seconds: int,
    now: int,
    *,
    max_entries: int | None = None,
) -> list[int]:
    """Drop entries at or before ``now - retention_seconds``.

    Surviving entries keep their order. With ``max_entries`` only the newest
    entries are kept.
    """
    horizon = now - retention_seconds
    kept = [ts for ts in history if ts > horizon]
    if max_entries is not None and len(kept) > max_entries:
        kept = kept[-max_entries:]
    return kept
