"""Exponential backoff retry shared by downloads and lifecycle operations."""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from node_manager.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Upper bound for a single wait between attempts, in seconds.
DEFAULT_MAX_INTERVAL = 60.0


def expo(
    operation: Callable[[], T],
    initial_interval: float,
    max_elapsed: float,
    max_retries: int | None = None,
    *,
    max_interval: float = DEFAULT_MAX_INTERVAL,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``operation`` until it succeeds, backing off exponentially.

    The wait starts at ``initial_interval`` seconds and doubles after every
    failed attempt (no jitter), never exceeding ``max_interval``. Retrying stops
    once ``max_elapsed`` seconds have passed or, when given, after
    ``max_retries`` retries, whichever comes first.

    Args:
        operation: Zero-argument callable; raising counts as a failed attempt
        initial_interval: First wait in seconds
        max_elapsed: Total time budget in seconds
        max_retries: Optional cap on retries after the first attempt
        max_interval: Cap on a single wait in seconds
        retry_on: Exception types worth retrying; anything else is raised at once
        sleep: Sleep function, replaceable in tests

    Returns:
        Whatever ``operation`` returns on its first successful call

    Raises:
        Exception: The exception raised by the last attempt
    """
    stop = stop_after_delay(max_elapsed)
    if max_retries is not None:
        stop = stop | stop_after_attempt(max_retries + 1)

    retrying = Retrying(
        stop=stop,
        retry=retry_if_exception_type(retry_on),
        wait=wait_exponential(multiplier=initial_interval, exp_base=2, max=max_interval),
        sleep=sleep,
        reraise=True,
        before_sleep=before_sleep_log(logger, logging.INFO),
    )
    return retrying(operation)
