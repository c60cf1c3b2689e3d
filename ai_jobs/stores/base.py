"""Job Record Accessor interface."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterable, Optional

from ai_jobs.domain.models import AIJob
from ai_jobs.domain.states import JobKind, JobStatus


class JobStore(ABC):
    """
    Backing store for AI jobs. The orchestrator only creates and reads;
    every status change happens in the external executor.

    Implementations raise StoreError when the backend fails.
    """

    @abstractmethod
    async def create_job(self, owner_id: str, kind: JobKind, input_data: dict[str, Any]) -> AIJob:
        """Inserts a job. The returned job is always QUEUED."""
        ...

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[AIJob]:
        ...

    @abstractmethod
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
        """Newest-first jobs by `order_by` ("created_at" or "updated_at")."""
        ...

    async def close(self) -> None:
        pass
