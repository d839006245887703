"""Server-side history store keyed by client identity.

Notes:
- History lives in one shared logical store (see ``HistoryBackend``).
- Read-modify-write cycles for the same identity are serialized with a fixed
  pool of striped locks, so memory use does not grow with the client count.
- Backends shared between processes also provide ``locked()``, which is held
  together with the stripe lock.
- Backend failures never propagate: reads degrade to empty history and the
  condition is logged for operators.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager, ExitStack, contextmanager, nullcontext
from typing import Any, Callable, Iterator

from app.adapters.rate_limit.base import AbstractClientStateStore, ClientContext, TimestampHistory
from app.adapters.rate_limit.window import prune
from app.core.errors import StoreUnavailableError
from app.core.logging import hash_client_identity

logger = logging.getLogger(__name__)

_LOCK_STRIPES = 64


class HistoryBackend(ABC):
    """Key-value primitive holding one history per identity."""

    name: str = "backend"

    @abstractmethod
    def load(self, identity: str) -> TimestampHistory:
        """Return the stored history (empty if absent).

        Raises:
            StoreUnavailableError: If the backing store cannot be read.
        """
        raise NotImplementedError

    @abstractmethod
    def save(self, identity: str, history: TimestampHistory) -> None:
        """Replace the stored history; an empty history removes the identity.

        Raises:
            StoreUnavailableError: If the backing store cannot be written.
        """
        raise NotImplementedError

    def locked(self) -> AbstractContextManager[Any]:
        """Cross-process guard for a read-modify-write cycle.

        Process-local backends need none.
        """
        return nullcontext()


class ServerKeyedStore(AbstractClientStateStore):
    """History store backed by a shared ``HistoryBackend``.

    Every write prunes entries older than the retention horizon and, when
    ``max_entries`` is set, keeps only the newest entries. A cap equal to the
    largest tier limit leaves admission decisions unchanged.
    """

    def __init__(
        self,
        backend: HistoryBackend,
        *,
        retention_seconds: int = 86400,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            backend: Key-value backend holding the histories.
            retention_seconds: Maximum age of a kept timestamp.
            max_entries: Optional per-client cap on stored timestamps.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If retention_seconds or max_entries are invalid.
        """
        if retention_seconds < 1:
            raise ValueError("retention_seconds must be >= 1")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._backend = backend
        self._retention_seconds = retention_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._locks = [threading.RLock() for _ in range(_LOCK_STRIPES)]

    @property
    def backend(self) -> HistoryBackend:
        return self._backend

    def stripe(self, identity: str) -> threading.RLock:
        digest = hashlib.sha256(identity.encode()).digest()
        return self._locks[int.from_bytes(digest[:4], "big") % _LOCK_STRIPES]

    @contextmanager
    def lock(self, context: ClientContext) -> Iterator[None]:
        with self.stripe(context.identity), ExitStack() as stack:
            try:
                stack.enter_context(self._backend.locked())
            except StoreUnavailableError as exc:
                self._log_unavailable("lock", context, exc, logging.WARNING)
            yield

    def _log_unavailable(
        self, operation: str, context: ClientContext, exc: StoreUnavailableError, level: int
    ) -> None:
        logger.log(
            level,
            "rate_limit.store_unavailable",
            extra={
                "operation": operation,
                "backend": self._backend.name,
                "key_hash": hash_client_identity(context.identity),
                "error_code": exc.code,
                "error_message": exc.message,
            },
        )

    def read(self, context: ClientContext) -> TimestampHistory:
        try:
            history = self._backend.load(context.identity)
        except StoreUnavailableError as exc:
            self._log_unavailable("read", context, exc, logging.WARNING)
            return []

        now = int(self._clock())
        return prune(history, self._retention_seconds, now, max_entries=self._max_entries)

    def write(self, context: ClientContext, history: TimestampHistory) -> None:
        now = int(self._clock())
        pruned = prune(history, self._retention_seconds, now, max_entries=self._max_entries)
        try:
            self._backend.save(context.identity, pruned)
        except StoreUnavailableError as exc:
            self._log_unavailable("write", context, exc, logging.ERROR)
