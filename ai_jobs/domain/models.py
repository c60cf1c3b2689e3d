from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Optional, TypeVar

from ai_jobs.domain.errors import JobError
from ai_jobs.domain.states import JobKind, JobStatus, TERMINAL_STATUSES

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite and some REST backends hand back naive timestamps; they are stored as UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(str(value)))


@dataclass
class AIJob:
    id: str
    owner_id: str
    kind: JobKind
    status: JobStatus
    input: dict[str, Any] = field(default_factory=dict)

    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    feedback_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AIJob":
        """Builds a job from a raw `ai_jobs` row (REST payloads, fixtures)."""
        return cls(
            id=str(row["id"]),
            owner_id=row["owner_user_id"],
            kind=JobKind(row["job_type"]),
            status=JobStatus(row["status"]),
            input=row.get("input") or {},
            result=row.get("result"),
            error=row.get("error"),
            created_at=parse_timestamp(row.get("created_at")) or utcnow(),
            updated_at=parse_timestamp(row.get("updated_at")) or utcnow(),
            feedback_at=parse_timestamp(row.get("feedback_at")),
        )


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result/error pair returned by every orchestration call.

    Expected conditions (timeouts, guard rejections, missing jobs) travel in
    `error` instead of being raised. A job that ended in FAILED is a valid
    outcome: `data` holds it and `error` is None.
    """
    data: Optional[T] = None
    error: Optional[JobError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, data: Optional[T] = None) -> "Outcome[T]":
        return cls(data=data, error=None)

    @classmethod
    def failure(cls, error: JobError) -> "Outcome[T]":
        return cls(data=None, error=error)


@dataclass(frozen=True)
class SubmittedJob:
    job_id: str
    # Best-effort notification; the job exists even when this is set
    trigger_error: Optional[JobError] = None
