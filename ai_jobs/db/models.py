from datetime import datetime
from typing import Optional, Any

from sqlalchemy import String, Text, DateTime, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from ai_jobs.db.session import Base
from ai_jobs.domain.models import AIJob, as_utc, utcnow
from ai_jobs.domain.states import JobKind, JobStatus

class AIJobRecord(Base):
    __tablename__ = "ai_jobs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_user_id: Mapped[str] = mapped_column(String, nullable=False)
    job_type: Mapped[str] = mapped_column(String, nullable=False)

    # Written by the client on insert, then only by the executor
    status: Mapped[str] = mapped_column(String, default=JobStatus.QUEUED, index=True)
    input: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    result: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    feedback_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        # Finder queries: owner + type + status, newest first
        Index("ix_ai_jobs_owner_type_status", "owner_user_id", "job_type", "status"),
        Index("ix_ai_jobs_updated_at", "updated_at"),
    )

    def to_domain(self) -> AIJob:
        return AIJob(
            id=self.id,
            owner_id=self.owner_user_id,
            kind=JobKind(self.job_type),
            status=JobStatus(self.status),
            input=self.input or {},
            result=self.result,
            error=self.error,
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
            feedback_at=as_utc(self.feedback_at),
        )
