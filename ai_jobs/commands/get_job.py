from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ai_jobs.db.models import AIJobRecord
from ai_jobs.domain.states import JobKind, JobStatus

async def get_job(session: AsyncSession, job_id: str) -> Optional[AIJobRecord]:
    # populate_existing: a poller re-reading in one session must see the executor's writes
    stmt = select(AIJobRecord).where(AIJobRecord.id == job_id).execution_options(populate_existing=True)
    return await session.scalar(stmt)

async def list_jobs(
    session: AsyncSession,
    owner_id: str,
    kind: JobKind,
    statuses: Iterable[JobStatus],
    updated_since: Optional[datetime] = None,
    order_by: str = "created_at",
    limit: int = 10
) -> list[AIJobRecord]:
    """
    Newest-first jobs of one kind for one owner, restricted to `statuses`.
    `order_by` is "created_at" (active lookups) or "updated_at" (recent lookups).
    """
    if order_by not in ("created_at", "updated_at"):
        raise ValueError(f"Unsupported order_by: {order_by}")

    stmt = select(AIJobRecord).where(
        AIJobRecord.owner_user_id == owner_id,
        AIJobRecord.job_type == JobKind(kind).value,
        AIJobRecord.status.in_([JobStatus(s).value for s in statuses])
    )
    if updated_since is not None:
        stmt = stmt.where(AIJobRecord.updated_at >= updated_since)

    column = getattr(AIJobRecord, order_by)
    stmt = stmt.order_by(column.desc()).limit(limit)

    res = await session.scalars(stmt)
    return list(res.all())
