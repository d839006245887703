"""Unit tests for sliding-window counting."""

import pytest

from app.adapters.rate_limit.base import QuotaStats
from app.adapters.rate_limit.window import (
    count_in_window,
    is_allowed,
    next_reset,
    prune,
    window_stats,
)

NOW = 1_000_000


def test_count_excludes_entry_exactly_at_window_start() -> None:
    history = [NOW - 60, NOW - 59, NOW]

    assert count_in_window(history, 60, NOW) == 2


def test_count_empty_history() -> None:
    assert count_in_window([], 60, NOW) == 0


@pytest.mark.parametrize("limit", [0, 1, 2, 3, 4, 10])
@pytest.mark.parametrize(
    "history",
    [
        [],
        [NOW],
        [NOW, NOW],
        [NOW - 70, NOW - 10, NOW - 5],
        [NOW - 59, NOW - 30, NOW - 1, NOW],
    ],
)
def test_is_allowed_iff_count_below_limit(history: list[int], limit: int) -> None:
    expected = count_in_window(history, 60, NOW) < limit

    assert is_allowed(history, limit, 60, NOW) is expected


def test_nth_request_is_last_admitted() -> None:
    # limit=2: two recorded requests exhaust the window
    assert is_allowed([], 2, 60, NOW) is True
    assert is_allowed([NOW], 2, 60, NOW) is True
    assert is_allowed([NOW, NOW], 2, 60, NOW) is False


def test_entry_outside_window_does_not_count() -> None:
    assert is_allowed([NOW - 70], 1, 60, NOW) is True


@pytest.mark.parametrize(
    ("now", "period", "expected"),
    [
        (125, 60, 180),
        (120, 60, 120),
        (1, 86400, 86400),
        (86401, 86400, 172800),
    ],
)
def test_next_reset_is_period_aligned(now: int, period: int, expected: int) -> None:
    assert next_reset(period, now) == expected


def test_window_stats() -> None:
    history = [100, 110, 124]

    stats = window_stats(history, limit=2, period_seconds=60, now=125)

    assert stats == QuotaStats(count=3, remaining=0, reset_at=180)


def test_window_stats_is_deterministic() -> None:
    history = [NOW - 5, NOW - 3]

    assert window_stats(history, 5, 60, NOW) == window_stats(list(history), 5, 60, NOW)


def test_prune_drops_only_entries_at_or_before_horizon() -> None:
    history = [NOW - 86400, NOW - 86399, NOW - 70, NOW - 86500, NOW]

    assert prune(history, 86400, NOW) == [NOW - 86399, NOW - 70, NOW]


def test_prune_cap_keeps_newest_entries() -> None:
    history = [NOW - 3, NOW - 2, NOW - 1, NOW]

    assert prune(history, 86400, NOW, max_entries=2) == [NOW - 1, NOW]


def test_prune_does_not_mutate_input() -> None:
    history = [NOW - 90000, NOW]

    prune(history, 86400, NOW)

    assert history == [NOW - 90000, NOW]
