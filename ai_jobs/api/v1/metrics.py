from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter()

# Metrics Definitions
JOBS_SUBMITTED = Counter('ai_jobs_submitted_total', 'Jobs created by the orchestrator', ['kind'])

TRIGGER_TOTAL = Counter(
    'ai_job_triggers_total',
    'Execution trigger calls',
    ['outcome']  # accepted|timed_out|rejected|reauthenticate|transport|auth|configuration
)

POLLS_TOTAL = Counter(
    'ai_job_polls_total',
    'Finished poll invocations',
    ['strategy', 'outcome']  # outcome=succeeded|failed|timeout|not_found|store|already_polling|circuit_open
)

POLL_DURATION = Histogram(
    'ai_job_poll_duration_seconds',
    'Wall time of one poll invocation',
    ['strategy'],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
)

CIRCUIT_BREAKER_OPENED = Counter(
    'ai_job_circuit_breaker_open_total',
    'Polls refused because the job failed too often'
)

ACTIVE_POLLS = Gauge(
    "ai_job_active_polls",
    "Jobs currently being polled"
)

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
