"""JSON file history backend.

The whole store is one JSON object mapping identity to a list of epoch-second
timestamps. Writes rewrite the file atomically (temp file + replace). Every
load and save holds an ``fcntl.flock`` on a sidecar ``<name>.lock`` file
(shared for loads, exclusive for saves and for ``locked()``), so workers
sharing the file do not lose each other's updates.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import threading
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Iterator

from app.adapters.rate_limit.base import TimestampHistory
from app.adapters.rate_limit.server_keyed import HistoryBackend
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)


class JsonFileHistoryBackend(HistoryBackend):
    """Backend persisting all histories in a single JSON file."""

    name = "file"

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._lock = threading.RLock()
        self._flock_depth = 0
        self._flock_fh = None

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, TimestampHistory]:
        """Load and validate the whole file.

        Raises:
            StoreUnavailableError: If the file is unreadable or malformed.
        """
        if not self._path.exists():
            return {}

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreUnavailableError(
                code="store_read_failed",
                message=f"Could not read rate limit data: {exc}",
                details={"backend": self.name},
            ) from exc

        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise StoreUnavailableError(
                code="store_corrupted",
                message=f"Rate limit data is not valid JSON: {exc}",
                details={"backend": self.name},
            ) from exc

        if not isinstance(data, dict):
            raise StoreUnavailableError(
                code="store_corrupted",
                message="Rate limit data must be a JSON object",
                details={"backend": self.name},
            )

        histories: dict[str, TimestampHistory] = {}
        for identity, entries in data.items():
            if not isinstance(entries, list) or not all(
                isinstance(ts, int) and not isinstance(ts, bool) for ts in entries
            ):
                raise StoreUnavailableError(
                    code="store_corrupted",
                    message="Rate limit history must be a list of integer timestamps",
                    details={"backend": self.name},
                )
            histories[identity] = entries
        return histories

    def _write_all(self, histories: dict[str, TimestampHistory]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(histories, fh, separators=(",", ":"))
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreUnavailableError(
                code="store_write_failed",
                message=f"Could not write rate limit data: {exc}",
                details={"backend": self.name},
            ) from exc

    @contextmanager
    def _file_lock(self, operation: int) -> Iterator[None]:
        """Hold the sidecar flock; re-entrant within the owning thread.

        A nested acquisition keeps the outer lock mode.
        """
        with self._lock:
            if self._flock_depth == 0:
                fh = None
                try:
                    self._path.parent.mkdir(parents=True, exist_ok=True)
                    fh = open(self._lock_path, "a+b")
                    fcntl.flock(fh, operation)
                except OSError as exc:
                    if fh is not None:
                        fh.close()
                    raise StoreUnavailableError(
                        code="store_lock_failed",
                        message=f"Could not lock rate limit data: {exc}",
                        details={"backend": self.name},
                    ) from exc
                self._flock_fh = fh
            self._flock_depth += 1
            try:
                yield
            finally:
                self._flock_depth -= 1
                if self._flock_depth == 0:
                    fh, self._flock_fh = self._flock_fh, None
                    fcntl.flock(fh, fcntl.LOCK_UN)
                    fh.close()

    def locked(self) -> AbstractContextManager[None]:
        return self._file_lock(fcntl.LOCK_EX)

    def load(self, identity: str) -> TimestampHistory:
        with self._file_lock(fcntl.LOCK_SH):
            return list(self._read_all().get(identity, ()))

    def save(self, identity: str, history: TimestampHistory) -> None:
        with self._file_lock(fcntl.LOCK_EX):
            try:
                histories = self._read_all()
            except StoreUnavailableError as exc:
                if exc.code != "store_corrupted":
                    raise
                # Unparseable content is unrecoverable; start a fresh file.
                logger.warning(
                    "rate_limit.store_reset",
                    extra={"backend": self.name, "error_message": exc.message},
                )
                histories = {}
            if history:
                histories[identity] = list(history)
            else:
                histories.pop(identity, None)
            self._write_all(histories)
