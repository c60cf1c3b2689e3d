import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from ai_jobs.db.models import AIJobRecord
from ai_jobs.domain.models import utcnow
from ai_jobs.domain.states import JobKind, JobStatus

logger = logging.getLogger(__name__)

async def create_job(
    session: AsyncSession,
    owner_id: str,
    kind: JobKind,
    input_data: dict[str, Any]
) -> AIJobRecord:
    """
    Inserts a new job in QUEUED state.
    The caller owns the transaction; the row is flushed, not committed.
    """
    now = utcnow()
    record = AIJobRecord(
        id=str(uuid4()),
        owner_user_id=owner_id,
        job_type=JobKind(kind).value,
        input=input_data,
        status=JobStatus.QUEUED.value,
        created_at=now,
        updated_at=now,
    )
    session.add(record)
    await session.flush()

    logger.debug("Created %s job %s for owner=%s", record.job_type, record.id, owner_id)
    return record
