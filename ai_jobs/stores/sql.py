import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ai_jobs.commands.create_job import create_job
from ai_jobs.commands.get_job import get_job, list_jobs
from ai_jobs.domain.errors import StoreError
from ai_jobs.domain.models import AIJob
from ai_jobs.domain.states import JobKind, JobStatus
from ai_jobs.stores.base import JobStore

logger = logging.getLogger(__name__)


class SqlJobStore(JobStore):
    """JobStore over the `ai_jobs` table, one short session per call."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create_job(self, owner_id: str, kind: JobKind, input_data: dict[str, Any]) -> AIJob:
        try:
            async with self._session_factory() as session:
                record = await create_job(session, owner_id, kind, input_data)
                job = record.to_domain()
                await session.commit()
                return job
        except SQLAlchemyError as e:
            logger.error("Failed to create %s job for owner=%s: %s", kind, owner_id, e)
            raise StoreError(f"Failed to create job: {e}") from e

    async def get_job(self, job_id: str) -> Optional[AIJob]:
        try:
            async with self._session_factory() as session:
                record = await get_job(session, job_id)
                return record.to_domain() if record else None
        except SQLAlchemyError as e:
            logger.warning("Failed to read job %s: %s", job_id, e)
            raise StoreError(f"Failed to read job {job_id}: {e}") from e

    async def list_jobs(
        self,
        owner_id: str,
        kind: JobKind,
        statuses: Iterable[JobStatus],
        *,
        updated_since: Optional[datetime] = None,
        order_by: str = "created_at",
        limit: int = 10,
    ) -> list[AIJob]:
        try:
            async with self._session_factory() as session:
                records = await list_jobs(
                    session,
                    owner_id,
                    kind,
                    statuses,
                    updated_since=updated_since,
                    order_by=order_by,
                    limit=limit,
                )
                return [r.to_domain() for r in records]
        except SQLAlchemyError as e:
            logger.warning("Failed to list %s jobs for owner=%s: %s", kind, owner_id, e)
            raise StoreError(f"Failed to list jobs: {e}") from e
