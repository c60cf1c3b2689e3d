from fastapi import APIRouter
from pydantic import BaseModel

from ai_jobs.api.deps import Orchestrator
from ai_jobs.domain.states import PollStrategy

router = APIRouter()

class CircuitBreakerState(BaseModel):
    job_id: str
    open: bool
    polling: bool
    failures: dict[str, int]

def _state(orchestrator, job_id: str) -> CircuitBreakerState:
    guard = orchestrator.guard
    return CircuitBreakerState(
        job_id=job_id,
        open=guard.is_open(job_id),
        polling=guard.is_active(job_id),
        failures={s.value: guard.failure_count(job_id, s) for s in PollStrategy},
    )

@router.get("/circuit-breakers/{job_id}", response_model=CircuitBreakerState)
async def get_circuit_breaker(job_id: str, orchestrator: Orchestrator):
    return _state(orchestrator, job_id)

@router.delete("/circuit-breakers/{job_id}", response_model=CircuitBreakerState)
async def reset_circuit_breaker(job_id: str, orchestrator: Orchestrator):
    orchestrator.reset_circuit_breaker(job_id)
    return _state(orchestrator, job_id)
