"""Local state locking."""

from __future__ import annotations

import fcntl
import logging
import time
from pathlib import Path
from typing import IO, TYPE_CHECKING

from git_provisioner.engine.errors import StateLockError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.2


class StateLock:
    """Exclusive ``flock`` on ``<state>.lock`` held for the lifetime of the context.

    With ``timeout=None`` the lock blocks until it is free; otherwise
    ``StateLockError`` is raised once *timeout* seconds pass.
    """

    def __init__(self, state_path: Path, *, timeout: float | None = None) -> None:
        self._lock_path = Path(str(state_path) + ".lock")
        self._timeout = timeout
        self._file: IO[str] | None = None

    def __enter__(self) -> StateLock:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        f = self._lock_path.open("a+", encoding="utf-8")
        try:
            self._acquire(f)
        except BaseException:
            f.close()
            raise
        self._file = f
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._file is None:
            return
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None

    def _acquire(self, f: IO[str]) -> None:
        if self._timeout is None:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            except OSError as e:
                raise StateLockError(str(e)) from e
            return

        deadline = time.monotonic() + self._timeout
        while True:
            try:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise StateLockError(
                        f"state is locked by another process: {self._lock_path}"
                    ) from None
                logger.debug("Waiting for state lock %s", self._lock_path)
                time.sleep(_POLL_INTERVAL)
            except OSError as e:
                raise StateLockError(str(e)) from e
