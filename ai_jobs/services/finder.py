"""
Active/Recent Job Finder.

Used before submitting to avoid duplicate work for the same logical request:
an in-flight job can be re-attached to, a job that finished moments ago can be
reused instead of re-running the generation.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Optional, Union

from ai_jobs.domain.models import AIJob, utcnow
from ai_jobs.domain.states import ACTIVE_STATUSES, TERMINAL_STATUSES, JobKind, JobStatus
from ai_jobs.settings import Settings, settings as default_settings
from ai_jobs.stores.base import JobStore

logger = logging.getLogger(__name__)

Predicate = Callable[[dict[str, Any]], bool]


class InputMatch:
    """Declarative predicate: every given field of the payload equals its value."""

    def __init__(self, **fields: Any):
        self.fields = fields

    def __call__(self, payload: dict[str, Any]) -> bool:
        return all(payload.get(key) == value for key, value in self.fields.items())

    def __repr__(self):
        args = ", ".join(f"{k}={v!r}" for k, v in self.fields.items())
        return f"InputMatch({args})"


def first_field_equals(keys: Iterable[str], value: Any) -> Predicate:
    """
    Matches when the first key present in the payload equals `value`.
    Item-scoped kinds disagree on naming (`item_id` vs `wardrobe_item_id`).
    """
    keys = tuple(keys)

    def predicate(payload: dict[str, Any]) -> bool:
        for key in keys:
            if payload.get(key) is not None:
                return payload[key] == value
        return False

    return predicate


def match_any(payload: dict[str, Any]) -> bool:
    return True


def _matches(predicate: Predicate, payload: Optional[dict[str, Any]], job_id: str) -> bool:
    try:
        return bool(predicate(payload or {}))
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        # A payload the predicate can't read is not the job we are looking for
        logger.debug("Predicate %r failed on job %s: %s", predicate, job_id, e)
        return False


class JobFinder:
    def __init__(
        self,
        store: JobStore,
        settings: Optional[Settings] = None,
        now: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.settings = settings or default_settings
        self._now = now

    async def find_active(self, owner_id: str, kind: JobKind, predicate: Predicate = match_any) -> Optional[AIJob]:
        """Most recently created queued/running job whose input satisfies `predicate`."""
        jobs = await self.store.list_jobs(
            owner_id,
            kind,
            ACTIVE_STATUSES,
            order_by="created_at",
            limit=self.settings.ACTIVE_JOB_LOOKUP_LIMIT,
        )
        return self._first_match(jobs, predicate)

    async def find_recent(
        self,
        owner_id: str,
        kind: JobKind,
        predicate: Predicate = match_any,
        window_seconds: Optional[float] = None
    ) -> Optional[AIJob]:
        """Most recently updated terminal job within the trailing window (default 60s)."""
        if window_seconds is None:
            window_seconds = self.settings.RECENT_JOB_WINDOW_SECONDS
        since = self._now() - timedelta(seconds=window_seconds)

        jobs = await self.store.list_jobs(
            owner_id,
            kind,
            TERMINAL_STATUSES,
            updated_since=since,
            order_by="updated_at",
            limit=self.settings.ACTIVE_JOB_LOOKUP_LIMIT,
        )
        return self._first_match(jobs, predicate)

    async def find_latest_succeeded(
        self,
        owner_id: str,
        kinds: Union[JobKind, Iterable[JobKind]],
        predicate: Predicate = match_any,
        window_seconds: Optional[float] = None,
        limit: Optional[int] = None,
        match_on: str = "input"
    ) -> Optional[AIJob]:
        """
        Long-window lookup of a succeeded job, for reattaching feedback to an
        output after a reload. Kinds are tried in order; the first kind with
        a match wins. `match_on` selects whether the predicate sees the job's
        input or its result.
        """
        if match_on not in ("input", "result"):
            raise ValueError(f"match_on must be 'input' or 'result', got {match_on!r}")
        if isinstance(kinds, str):
            kinds = (kinds,)
        if window_seconds is None:
            window_seconds = self.settings.FEEDBACK_LOOKUP_DAYS * 86400
        since = self._now() - timedelta(seconds=window_seconds)

        for kind in kinds:
            jobs = await self.store.list_jobs(
                owner_id,
                kind,
                (JobStatus.SUCCEEDED,),
                updated_since=since,
                order_by="updated_at",
                limit=limit or self.settings.ACTIVE_JOB_LOOKUP_LIMIT,
            )
            for job in jobs:
                payload = job.input if match_on == "input" else job.result
                if _matches(predicate, payload, job.id):
                    return job
        return None

    @staticmethod
    def _first_match(jobs: list[AIJob], predicate: Predicate) -> Optional[AIJob]:
        for job in jobs:
            if _matches(predicate, job.input, job.id):
                return job
        return None
