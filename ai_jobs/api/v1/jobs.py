from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ai_jobs.api.deps import BearerToken, Orchestrator
from ai_jobs.domain.errors import (
    AlreadyPollingError,
    CircuitBreakerOpenError,
    JobError,
    JobNotFoundError,
    PollingTimeoutError,
)
from ai_jobs.domain.models import AIJob
from ai_jobs.domain.payloads import dump_input
from ai_jobs.domain.policy import classify_failure
from ai_jobs.domain.states import JobKind, JobStatus
from ai_jobs.services.finder import InputMatch, match_any

router = APIRouter()

class JobCreate(BaseModel):
    owner_id: str
    kind: JobKind
    input: dict[str, Any] = Field(default_factory=dict)

class SubmitResponse(BaseModel):
    job_id: str
    trigger_error: Optional[str] = None

class JobResponse(BaseModel):
    id: str
    owner_id: str
    kind: JobKind
    status: JobStatus
    input: dict[str, Any]
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    failure_class: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_job(cls, job: AIJob) -> "JobResponse":
        return cls(
            id=job.id,
            owner_id=job.owner_id,
            kind=job.kind,
            status=job.status,
            input=job.input,
            result=job.result,
            error=job.error,
            failure_class=classify_failure(job),
            created_at=job.created_at,
            updated_at=job.updated_at,
        )

class WaitRequest(BaseModel):
    max_attempts: Optional[int] = Field(default=None, ge=1)
    initial_interval_seconds: Optional[float] = Field(default=None, gt=0)
    max_wait_seconds: Optional[float] = Field(default=None, gt=0)

# Orchestration errors -> HTTP status for the wait endpoint
ERROR_STATUS = {
    AlreadyPollingError: status.HTTP_409_CONFLICT,
    CircuitBreakerOpenError: status.HTTP_503_SERVICE_UNAVAILABLE,
    PollingTimeoutError: status.HTTP_504_GATEWAY_TIMEOUT,
    JobNotFoundError: status.HTTP_404_NOT_FOUND,
}

def raise_for_error(error: JobError):
    for error_type, code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            raise HTTPException(status_code=code, detail=str(error))
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))

@router.post("", response_model=SubmitResponse, status_code=status.HTTP_201_CREATED)
async def create_job(payload: JobCreate, orchestrator: Orchestrator, token: BearerToken):
    try:
        input_data = dump_input(payload.kind, payload.input)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False))

    outcome = await orchestrator.create_and_trigger_job(payload.owner_id, payload.kind, input_data, access_token=token)
    if outcome.error is not None:
        raise_for_error(outcome.error)

    submitted = outcome.data
    return SubmitResponse(
        job_id=submitted.job_id,
        trigger_error=str(submitted.trigger_error) if submitted.trigger_error else None,
    )

# Declared before /{job_id} so the literal paths win
@router.get("/active", response_model=Optional[JobResponse])
async def get_active_job(owner_id: str, kind: JobKind, orchestrator: Orchestrator, item_id: Optional[str] = None):
    predicate = InputMatch(**{_item_key(kind): item_id}) if item_id else match_any
    outcome = await orchestrator.get_active_job(owner_id, kind, predicate)
    if outcome.error is not None:
        raise_for_error(outcome.error)
    return JobResponse.from_job(outcome.data) if outcome.data else None

@router.get("/recent", response_model=Optional[JobResponse])
async def get_recent_job(
    owner_id: str,
    kind: JobKind,
    orchestrator: Orchestrator,
    item_id: Optional[str] = None,
    window_seconds: Optional[float] = None,
):
    predicate = InputMatch(**{_item_key(kind): item_id}) if item_id else match_any
    outcome = await orchestrator.get_recent_job(owner_id, kind, predicate, window_seconds)
    if outcome.error is not None:
        raise_for_error(outcome.error)
    return JobResponse.from_job(outcome.data) if outcome.data else None

@router.get("/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, orchestrator: Orchestrator):
    outcome = await orchestrator.get_job(job_id)
    if outcome.error is not None:
        raise_for_error(outcome.error)
    if outcome.data is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.from_job(outcome.data)

@router.post("/{job_id}/wait", response_model=JobResponse)
async def wait_for_job(job_id: str, orchestrator: Orchestrator, body: Optional[WaitRequest] = None):
    body = body or WaitRequest()
    outcome = await orchestrator.wait_for_job_completion(
        job_id,
        max_attempts=body.max_attempts,
        initial_interval=body.initial_interval_seconds,
        max_wait=body.max_wait_seconds,
    )
    if outcome.error is not None:
        raise_for_error(outcome.error)
    return JobResponse.from_job(outcome.data)

def _item_key(kind: JobKind) -> str:
    if kind in (JobKind.WARDROBE_ITEM_RENDER, JobKind.WARDROBE_ITEM_TAG, JobKind.WARDROBE_ITEM_GENERATE):
        return "item_id"
    if kind in (JobKind.OUTFIT_RENDER, JobKind.OUTFIT_MANNEQUIN):
        return "outfit_id"
    return "wardrobe_item_id"
