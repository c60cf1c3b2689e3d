import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from ai_jobs.api.v1.metrics import ACTIVE_POLLS, CIRCUIT_BREAKER_OPENED
from ai_jobs.domain.errors import AlreadyPollingError, CircuitBreakerOpenError
from ai_jobs.domain.states import PollStrategy

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 5


class PollingGuard:
    """
    Per-orchestrator dedup and circuit breaker for job polling.

    - At most one poll per job id at a time, across all strategies.
    - Consecutive failures are counted per strategy; once a job reaches
      `threshold` for a strategy, polls with that strategy are refused
      until `reset`.

    State is advisory and in-memory only. The lock makes it safe to share
    between threads; within one event loop it is never contended across an
    await.
    """

    def __init__(self, threshold: int = DEFAULT_THRESHOLD):
        self.threshold = threshold
        # job id -> token of the hold that owns it
        self._active: dict[str, object] = {}
        self._failures: dict[PollStrategy, dict[str, int]] = {s: {} for s in PollStrategy}
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, job_id: str, strategy: PollStrategy = PollStrategy.BACKOFF) -> Iterator[None]:
        """
        Marks `job_id` as being polled for the duration of the block.
        Raises AlreadyPollingError or CircuitBreakerOpenError before entering.
        """
        with self._lock:
            if job_id in self._active:
                raise AlreadyPollingError(job_id)
            failures = self._failures[strategy].get(job_id, 0)
            if failures >= self.threshold:
                CIRCUIT_BREAKER_OPENED.inc()
                raise CircuitBreakerOpenError(job_id, failures)
            token = object()
            self._active[job_id] = token
            ACTIVE_POLLS.inc()

        try:
            yield
        finally:
            self._release(job_id, token)

    def _release(self, job_id: str, token: Optional[object] = None):
        """Drops the marker. With a token, only if that hold still owns it."""
        with self._lock:
            if job_id not in self._active:
                return
            if token is not None and self._active[job_id] is not token:
                return
            del self._active[job_id]
            ACTIVE_POLLS.dec()

    def record_failure(self, job_id: str, strategy: PollStrategy = PollStrategy.BACKOFF) -> int:
        with self._lock:
            count = self._failures[strategy].get(job_id, 0) + 1
            self._failures[strategy][job_id] = count
        if count == self.threshold:
            logger.warning("Circuit breaker opened for job %s after %d %s failures", job_id, count, strategy)
        return count

    def record_success(self, job_id: str, strategy: PollStrategy = PollStrategy.BACKOFF):
        with self._lock:
            self._failures[strategy].pop(job_id, None)

    def failure_count(self, job_id: str, strategy: PollStrategy = PollStrategy.BACKOFF) -> int:
        with self._lock:
            return self._failures[strategy].get(job_id, 0)

    def is_active(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._active

    def is_open(self, job_id: str) -> bool:
        """True when backoff polling of `job_id` would be refused. Read-only."""
        return self.failure_count(job_id, PollStrategy.BACKOFF) >= self.threshold

    def reset(self, job_id: str):
        """Clears failure counts for every strategy and any stale active marker."""
        with self._lock:
            for counts in self._failures.values():
                counts.pop(job_id, None)
        self._release(job_id)
