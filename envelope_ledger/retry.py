"""
Calling-layer retry for optimistic concurrency conflicts.

The engine never retries on its own: a ConcurrencyConflictError means the
caller's read is stale, and only the caller can re-read and re-apply.
``run_with_retry`` wraps a whole unit of work (re-read included) and
retries it with exponential backoff.  Any other error propagates at once.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from envelope_ledger.exceptions import ConcurrencyConflictError
from envelope_ledger.logging_config import get_logger

logger = get_logger("retry")

T = TypeVar("T")


def run_with_retry(
    operation: Callable[[], T],
    attempts: int = 3,
    backoff: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run *operation*, retrying on ConcurrencyConflictError.

    Args:
        operation: Zero-argument callable performing one full unit of work.
        attempts: Total tries, including the first.
        backoff: Delay before the first retry; doubled on each further one.
        sleep: Injected for tests.

    Raises:
        ConcurrencyConflictError: the last conflict once attempts run out.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConcurrencyConflictError as exc:
            if attempt == attempts:
                logger.warning(
                    "concurrency_retry_exhausted",
                    extra={"attempts": attempts, "entity_type": exc.entity_type, "entity_id": exc.entity_id},
                )
                raise
            delay = backoff * (2 ** (attempt - 1))
            logger.info(
                "concurrency_conflict_retry",
                extra={
                    "attempt": attempt,
                    "delay_seconds": delay,
                    "entity_type": exc.entity_type,
                    "entity_id": exc.entity_id,
                },
            )
            sleep(delay)
    raise AssertionError("unreachable")
