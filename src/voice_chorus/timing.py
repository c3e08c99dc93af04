"""Elapsed-time log lines for request stages."""

import logging
import time

logger = logging.getLogger(__name__)


def log_elapsed(message: str, start: float, log: logging.Logger | None = None) -> float:
    """
    Log `message` with the seconds elapsed since `start`.

    Args:
        message: Stage description.
        start: A `time.perf_counter()` mark.
        log: Logger to write to (this module's logger by default).

    Returns:
        A fresh `time.perf_counter()` mark for timing the next stage.
    """
    now = time.perf_counter()
    (log or logger).info(f"{message} ({now - start:.2f}s)")
    return now
