"""Simple retry helper for transient infrastructure probes."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

import structlog

T = TypeVar("T")

logger = structlog.get_logger(__name__)


def retry(
    fn: Callable[[], T],
    attempts: int = 3,
    delay_seconds: float = 0.25,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> T:
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1, got {attempts}")

    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            last_error = exc
            logger.warning("retry_attempt_failed", attempt=attempt, attempts=attempts, error=str(exc))
            if attempt < attempts:
                time.sleep(delay_seconds)
    assert last_error is not None
    raise last_error
