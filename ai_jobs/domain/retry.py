import random
from typing import Iterator

DEFAULT_MAX_INTERVAL_SECONDS = 10.0


def calculate_delay(
    attempt: int,
    base_delay_seconds: float = 2.0,
    max_delay_seconds: float = DEFAULT_MAX_INTERVAL_SECONDS,
    jitter: bool = False
) -> float:
    """
    Calculates the wait before the next poll using exponential backoff.

    Formula:
        delay = min(base * (2 ^ attempt), max_delay)
        if jitter:
            delay = delay + random_uniform(0, 0.1 * delay)

    Args:
        attempt: Zero-based index of the poll that just finished.
                 attempt=0 means "first read done, how long until the second?"
                 and returns the base delay unchanged.

    Returns:
        float: Seconds to sleep. Never above max_delay_seconds unless jitter is on.
    """
    if attempt < 0:
        attempt = 0

    # Past 2^20 the cap has long been reached, avoid huge ints.
    safe_attempt = min(attempt, 20)

    delay = base_delay_seconds * (2 ** safe_attempt)

    if delay > max_delay_seconds:
        delay = max_delay_seconds

    if jitter:
        delay += random.uniform(0, delay * 0.1)

    return delay


def backoff_schedule(
    base_delay_seconds: float = 2.0,
    max_delay_seconds: float = DEFAULT_MAX_INTERVAL_SECONDS
) -> Iterator[float]:
    """Yields base, 2*base, 4*base, ... then max_delay forever."""
    attempt = 0
    while True:
        yield calculate_delay(attempt, base_delay_seconds, max_delay_seconds)
        attempt += 1
