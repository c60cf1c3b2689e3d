import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from ai_jobs.api.v1.metrics import POLLS_TOTAL, POLL_DURATION
from ai_jobs.domain.errors import (
    AlreadyPollingError,
    CircuitBreakerOpenError,
    JobNotFoundError,
    PollingTimeoutError,
    StoreError,
)
from ai_jobs.domain.models import AIJob, Outcome
from ai_jobs.domain.retry import calculate_delay
from ai_jobs.domain.states import JobStatus, PollStrategy
from ai_jobs.polling.guard import PollingGuard
from ai_jobs.settings import Settings, settings as default_settings
from ai_jobs.stores.base import JobStore

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


class JobPoller:
    """
    Waits for jobs to reach a terminal status by re-reading them.

    Two strategies share one PollingGuard: exponential backoff (front-loads
    responsiveness, then settles at MAX_POLL_INTERVAL_SECONDS) and a fixed
    short interval bounded by total duration. Every read and every sleep is
    an await, so cancelling the caller's task stops the poll and releases the
    guard on the way out.
    """

    def __init__(
        self,
        store: JobStore,
        guard: PollingGuard,
        settings: Optional[Settings] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic
    ):
        self.store = store
        self.guard = guard
        self.settings = settings or default_settings
        self._sleep = sleep
        self._clock = clock

    async def poll_with_backoff(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval: Optional[float] = None,
        *,
        deadline: Optional[float] = None
    ) -> Outcome[AIJob]:
        """
        `deadline` is an instant on this poller's clock. Sleeps are clamped to
        it and the poll times out once it passes, whatever attempts remain.
        """
        max_attempts = max_attempts or self.settings.default_max_attempts
        initial_interval = initial_interval or self.settings.POLL_INITIAL_INTERVAL_SECONDS

        started = self._clock()
        try:
            with self.guard.hold(job_id, PollStrategy.BACKOFF):
                outcome = await self._backoff_loop(job_id, max_attempts, initial_interval, deadline)
        except (AlreadyPollingError, CircuitBreakerOpenError) as e:
            logger.warning("Refusing to poll job %s: %s", job_id, e)
            outcome = Outcome.failure(e)
        else:
            POLL_DURATION.labels(strategy=PollStrategy.BACKOFF).observe(self._clock() - started)

        self._count(PollStrategy.BACKOFF, outcome)
        return outcome

    async def _backoff_loop(
        self,
        job_id: str,
        max_attempts: int,
        initial_interval: float,
        deadline: Optional[float]
    ) -> Outcome[AIJob]:
        cap = self.settings.MAX_POLL_INTERVAL_SECONDS
        polls = 0

        for attempt in range(max_attempts):
            is_last = attempt == max_attempts - 1
            polls += 1

            try:
                job = await self.store.get_job(job_id)
            except StoreError as e:
                self.guard.record_failure(job_id, PollStrategy.BACKOFF)
                return Outcome.failure(e)

            if job is None:
                if is_last:
                    self.guard.record_failure(job_id, PollStrategy.BACKOFF)
                    return Outcome.failure(JobNotFoundError(job_id))

            elif job.status == JobStatus.SUCCEEDED:
                self.guard.record_success(job_id, PollStrategy.BACKOFF)
                logger.info("Job %s succeeded after %d poll(s)", job_id, polls)
                return Outcome.success(job)

            elif job.status == JobStatus.FAILED:
                self.guard.record_failure(job_id, PollStrategy.BACKOFF)
                logger.info("Job %s failed after %d poll(s): %s", job_id, polls, job.error)
                return Outcome.success(job)

            if is_last:
                break
            if not await self._pause(calculate_delay(attempt, initial_interval, cap), deadline):
                break

        self.guard.record_failure(job_id, PollStrategy.BACKOFF)
        logger.info("Polling job %s gave up after %d poll(s)", job_id, polls)
        return Outcome.failure(PollingTimeoutError(job_id, f"{polls} attempts"))

    async def _pause(self, delay: float, deadline: Optional[float]) -> bool:
        """Sleeps `delay`, clamped to `deadline`. False when the deadline has already passed."""
        if deadline is not None:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            delay = min(delay, remaining)
        await self._sleep(delay)
        return True

    async def poll_with_final_check(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval: Optional[float] = None,
        *,
        deadline: Optional[float] = None
    ) -> Outcome[AIJob]:
        """
        Backoff poll plus one last read when it times out, in case the job
        finished between the final attempt and the loop exiting.
        """
        outcome = await self.poll_with_backoff(job_id, max_attempts, initial_interval, deadline=deadline)
        if not isinstance(outcome.error, PollingTimeoutError):
            return outcome

        logger.info("Polling job %s timed out, doing final check", job_id)
        final = await self._final_read(job_id)
        if final is not None:
            return Outcome.success(final)
        return outcome

    async def poll_fixed_interval(
        self,
        job_id: str,
        max_duration: Optional[float] = None,
        interval: Optional[float] = None
    ) -> Outcome[AIJob]:
        max_duration = max_duration or self.settings.FIXED_POLL_MAX_DURATION_SECONDS
        interval = interval or self.settings.FIXED_POLL_INTERVAL_SECONDS

        started = self._clock()
        try:
            with self.guard.hold(job_id, PollStrategy.FIXED_INTERVAL):
                outcome = await self._fixed_loop(job_id, max_duration, interval)
        except (AlreadyPollingError, CircuitBreakerOpenError) as e:
            logger.warning("Refusing to poll job %s: %s", job_id, e)
            outcome = Outcome.failure(e)
        else:
            POLL_DURATION.labels(strategy=PollStrategy.FIXED_INTERVAL).observe(self._clock() - started)

        self._count(PollStrategy.FIXED_INTERVAL, outcome)
        return outcome

    async def _fixed_loop(self, job_id: str, max_duration: float, interval: float) -> Outcome[AIJob]:
        started = self._clock()
        polls = 0

        while self._clock() - started < max_duration:
            polls += 1
            try:
                job = await self.store.get_job(job_id)
            except StoreError as e:
                self.guard.record_failure(job_id, PollStrategy.FIXED_INTERVAL)
                return Outcome.failure(e)

            # A missing row is treated like a job that has not started yet
            if job is not None and job.is_terminal:
                if job.status == JobStatus.SUCCEEDED:
                    self.guard.record_success(job_id, PollStrategy.FIXED_INTERVAL)
                else:
                    self.guard.record_failure(job_id, PollStrategy.FIXED_INTERVAL)
                logger.info("Job %s reached %s after %d poll(s)", job_id, job.status, polls)
                return Outcome.success(job)

            await self._sleep(interval)

        self.guard.record_failure(job_id, PollStrategy.FIXED_INTERVAL)
        return Outcome.failure(PollingTimeoutError(job_id, f"{max_duration:g}s"))

    async def wait_for_completion(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval: Optional[float] = None,
        max_wait: Optional[float] = None
    ) -> Outcome[AIJob]:
        """
        Waits for a terminal status, picking the strategy from `initial_interval`.

        Short intervals (<= FIXED_POLL_THRESHOLD_SECONDS) use the fixed
        1.5s poll bounded to min(max_attempts * initial_interval, 120s),
        followed by one direct read. Longer intervals use backoff with a
        final check and restart after every polling timeout until the job
        finishes, a non-timeout error comes back, or `max_wait` seconds have
        passed (math.inf waits forever). Every sleep is clamped to that
        deadline, so a round never runs past it.
        """
        max_attempts = max_attempts or self.settings.default_max_attempts
        initial_interval = initial_interval or self.settings.POLL_INITIAL_INTERVAL_SECONDS

        if initial_interval <= self.settings.FIXED_POLL_THRESHOLD_SECONDS:
            max_duration = min(max_attempts * initial_interval, self.settings.FIXED_POLL_MAX_DURATION_SECONDS)
            outcome = await self.poll_fixed_interval(job_id, max_duration, self.settings.FIXED_POLL_INTERVAL_SECONDS)
            if isinstance(outcome.error, PollingTimeoutError):
                final = await self._final_read(job_id)
                if final is not None:
                    return Outcome.success(final)
            return outcome

        if max_wait is None:
            max_wait = self.settings.WAIT_MAX_SECONDS
        deadline = self._clock() + max_wait

        while True:
            outcome = await self.poll_with_final_check(job_id, max_attempts, initial_interval, deadline=deadline)
            if not isinstance(outcome.error, PollingTimeoutError):
                return outcome

            if self._clock() >= deadline:
                logger.warning("Gave up waiting for job %s after %ss", job_id, max_wait)
                return Outcome.failure(PollingTimeoutError(job_id, f"waited {max_wait:g}s"))

            logger.info("Polling job %s timed out, continuing to wait", job_id)
            await self._pause(self.settings.WAIT_RETRY_PAUSE_SECONDS, deadline)

    async def _final_read(self, job_id: str) -> Optional[AIJob]:
        try:
            job = await self.store.get_job(job_id)
        except StoreError as e:
            logger.warning("Final check for job %s failed: %s", job_id, e)
            return None
        if job is not None and job.is_terminal:
            return job
        return None

    @staticmethod
    def _count(strategy: PollStrategy, outcome: Outcome[AIJob]):
        if outcome.error is not None:
            label = outcome.error.code
        else:
            label = outcome.data.status.value
        POLLS_TOTAL.labels(strategy=strategy, outcome=label).inc()
