# utils/retry.py
from __future__ import annotations

import logging
from typing import Callable, TypeVar

from ..constants import MAX_CONFLICT_RETRIES
from ..database.errors import ConcurrencyConflict

T = TypeVar("T")


def retry_on_conflict(
    work: Callable[[], T],
    *,
    logger: logging.Logger,
    label: str,
    attempts: int = MAX_CONFLICT_RETRIES,
) -> T:
    """
    Run `work` and re-run it when it raises ConcurrencyConflict.

    `work` must re-read all state it depends on (every engine operation is a pure
    function of prior state plus its delta, so re-applying is safe). The last
    conflict propagates once `attempts` is exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return work()
        except ConcurrencyConflict as e:
            if attempt >= attempts:
                logger.error("%s: giving up after %d conflicting attempts: %s", label, attempt, e)
                raise
            logger.warning("%s: stale state on attempt %d, re-reading: %s", label, attempt, e)
    raise AssertionError("unreachable")
