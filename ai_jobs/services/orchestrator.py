import asyncio
import logging
import time
from typing import Any, Optional

from ai_jobs.api.v1.metrics import JOBS_SUBMITTED
from ai_jobs.domain.errors import StoreError
from ai_jobs.domain.models import AIJob, Outcome, SubmittedJob
from ai_jobs.domain.states import JobKind
from ai_jobs.polling.guard import PollingGuard
from ai_jobs.polling.poller import Clock, JobPoller, Sleep
from ai_jobs.services.execution import ExecutionTrigger
from ai_jobs.services.finder import JobFinder, Predicate, match_any
from ai_jobs.settings import Settings, settings as default_settings
from ai_jobs.stores.base import JobStore

logger = logging.getLogger(__name__)


class JobOrchestrator:
    """
    Entry point for callers: submit a job, fire its trigger, wait for it.

    Each instance owns its PollingGuard, so two orchestrators in one process
    (or two tests) never see each other's dedup or breaker state.
    """

    def __init__(
        self,
        store: JobStore,
        trigger: ExecutionTrigger,
        guard: Optional[PollingGuard] = None,
        settings: Optional[Settings] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic
    ):
        self.settings = settings or default_settings
        self.store = store
        self.trigger = trigger
        self.guard = guard or PollingGuard(self.settings.CIRCUIT_BREAKER_THRESHOLD)
        self.poller = JobPoller(store, self.guard, self.settings, sleep=sleep, clock=clock)
        self.finder = JobFinder(store, self.settings)

    async def create_and_trigger_job(
        self,
        owner_id: str,
        kind: JobKind,
        input_data: dict[str, Any],
        access_token: Optional[str] = None
    ) -> Outcome[SubmittedJob]:
        """
        Creates the job, then notifies the executor.

        A failed trigger does not undo the creation: the job id is returned
        with `trigger_error` set, and the executor's sweep may still pick it up.
        """
        try:
            job = await self.store.create_job(owner_id, kind, input_data)
        except StoreError as e:
            return Outcome.failure(e)

        JOBS_SUBMITTED.labels(kind=job.kind).inc()

        triggered = await self.trigger.trigger_execution(job.id, access_token=access_token)
        if triggered.error is not None:
            logger.warning("Failed to trigger job execution, but job %s was created: %s", job.id, triggered.error)

        return Outcome.success(SubmittedJob(job_id=job.id, trigger_error=triggered.error))

    async def get_job(self, job_id: str) -> Outcome[AIJob]:
        try:
            return Outcome.success(await self.store.get_job(job_id))
        except StoreError as e:
            return Outcome.failure(e)

    async def poll_job(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval: Optional[float] = None
    ) -> Outcome[AIJob]:
        return await self.poller.poll_with_backoff(job_id, max_attempts, initial_interval)

    async def poll_job_with_final_check(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval: Optional[float] = None
    ) -> Outcome[AIJob]:
        return await self.poller.poll_with_final_check(job_id, max_attempts, initial_interval)

    async def poll_job_fixed_interval(
        self,
        job_id: str,
        max_duration: Optional[float] = None,
        interval: Optional[float] = None
    ) -> Outcome[AIJob]:
        return await self.poller.poll_fixed_interval(job_id, max_duration, interval)

    async def wait_for_job_completion(
        self,
        job_id: str,
        max_attempts: Optional[int] = None,
        initial_interval: Optional[float] = None,
        max_wait: Optional[float] = None
    ) -> Outcome[AIJob]:
        return await self.poller.wait_for_completion(job_id, max_attempts, initial_interval, max_wait)

    def reset_circuit_breaker(self, job_id: str):
        self.guard.reset(job_id)

    def is_circuit_breaker_open(self, job_id: str) -> bool:
        return self.guard.is_open(job_id)

    async def get_active_job(
        self,
        owner_id: str,
        kind: JobKind,
        predicate: Predicate = match_any
    ) -> Outcome[AIJob]:
        try:
            return Outcome.success(await self.finder.find_active(owner_id, kind, predicate))
        except StoreError as e:
            return Outcome.failure(e)

    async def get_recent_job(
        self,
        owner_id: str,
        kind: JobKind,
        predicate: Predicate = match_any,
        window_seconds: Optional[float] = None
    ) -> Outcome[AIJob]:
        try:
            return Outcome.success(await self.finder.find_recent(owner_id, kind, predicate, window_seconds))
        except StoreError as e:
            return Outcome.failure(e)

    async def close(self):
        await self.trigger.close()
        await self.store.close()
