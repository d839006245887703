"""In-memory history backend.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading

from app.adapters.rate_limit.base import TimestampHistory
from app.adapters.rate_limit.server_keyed import HistoryBackend


class InMemoryHistoryBackend(HistoryBackend):
    """Backend keeping every client's history in a process-local dict.

    Important:
        This backend is per-process only. If the API runs with multiple
        workers (e.g., multiple Uvicorn/Gunicorn workers), each worker will
        enforce its own independent limits.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._history_by_key: dict[str, TimestampHistory] = {}

    def load(self, identity: str) -> TimestampHistory:
        with self._lock:
            return list(self._history_by_key.get(identity, ()))

    def save(self, identity: str, history: TimestampHistory) -> None:
        with self._lock:
            if history:
                self._history_by_key[identity] = list(history)
            else:
                self._history_by_key.pop(identity, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._history_by_key)
