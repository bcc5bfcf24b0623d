"""Randomized delay between successive requests."""

import logging
import random
import time

logger = logging.getLogger(__name__)


def pace(base_millis: float = 0, jitter_factor: float = 1, sleep=time.sleep) -> float:
    """Sleep for ``base_millis`` plus up to ``jitter_factor`` milliseconds.

    Returns:
        The delay actually applied, in milliseconds.
    """
    delay = max(0.0, base_millis + random.uniform(0, jitter_factor))
    logger.debug(f"  [PACE] Waiting {delay:.0f} ms")
    sleep(delay / 1000)
    return delay
