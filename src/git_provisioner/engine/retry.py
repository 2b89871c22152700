"""Deadline-bounded retry with exponential backoff."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, TypeVar

from git_provisioner.engine.errors import RetryTimeoutError, TransientError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MIN_DELAY = 0.1
DEFAULT_MAX_DELAY = 10.0


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TransientError)


def retry_until_deadline(
    fn: Callable[[], T],
    *,
    timeout: float,
    deadline: float | None = None,
    is_retryable: Callable[[BaseException], bool] = is_transient,
    min_delay: float = DEFAULT_MIN_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *fn* until it succeeds, a non-retryable error occurs, or *timeout* elapses.

    Errors for which *is_retryable* returns False propagate immediately and
    unchanged. Retryable errors are retried after a doubling delay
    (``min_delay`` .. ``max_delay``), never sleeping past the deadline. Once the
    deadline has passed the last error is raised as ``RetryTimeoutError``; no
    attempt is started after that point.

    *deadline* is an absolute ``clock()`` value. It defaults to ``clock() +
    timeout`` and lets *fn* share the deadline to bound its own blocking calls.
    """
    if deadline is None:
        deadline = clock() + timeout
    delay = min_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            remaining = deadline - clock()
            if remaining > 0:
                wait = min(delay, remaining)
                logger.info("Attempt %d failed (%s); retrying in %.2fs", attempt, exc, wait)
                sleep(wait)
                delay = min(delay * 2, max_delay)
            if deadline - clock() <= 0:
                logger.debug("Giving up after %d attempt(s): %s", attempt, exc)
                raise RetryTimeoutError(timeout, exc) from exc
