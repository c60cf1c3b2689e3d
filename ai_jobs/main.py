import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import OperationalError

from ai_jobs.api.v1.admin import router as admin_router
from ai_jobs.api.v1.jobs import router as jobs_router
from ai_jobs.api.v1.metrics import router as metrics_router
from ai_jobs.auth.security import StaticSessionProvider
from ai_jobs.db.session import build_engine, build_session_factory, create_tables
from ai_jobs.services.execution import ExecutionTrigger
from ai_jobs.services.orchestrator import JobOrchestrator
from ai_jobs.settings import settings
from ai_jobs.stores.rest import RestJobStore
from ai_jobs.stores.sql import SqlJobStore

logger = logging.getLogger("uvicorn")

BOOTSTRAP_ATTEMPTS = 10
BOOTSTRAP_RETRY_SECONDS = 2

async def _bootstrap_tables(engine):
    for i in range(BOOTSTRAP_ATTEMPTS):
        try:
            await create_tables(engine)
            return
        except OperationalError as e:
            # Database container may still be starting
            if i == BOOTSTRAP_ATTEMPTS - 1:
                raise
            logger.warning(f"Bootstrap: database not ready ({e.orig}), retrying in {BOOTSTRAP_RETRY_SECONDS}s... ({i+1}/{BOOTSTRAP_ATTEMPTS})")
            await asyncio.sleep(BOOTSTRAP_RETRY_SECONDS)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests install their own orchestrator before startup
    if getattr(app.state, "orchestrator", None) is not None:
        yield
        return

    session_provider = StaticSessionProvider()
    engine = None

    if settings.REST_URL:
        store = RestJobStore(settings.REST_URL, settings.REST_API_KEY, session_provider)
        logger.info(f"Using REST job store at {settings.REST_URL}")
    else:
        engine = build_engine()
        await _bootstrap_tables(engine)
        store = SqlJobStore(build_session_factory(engine))

    trigger = ExecutionTrigger(session_provider)
    app.state.orchestrator = JobOrchestrator(store, trigger)

    yield

    # Shutdown
    await app.state.orchestrator.close()
    app.state.orchestrator = None
    if engine is not None:
        await engine.dispose()

app = FastAPI(
    title=settings.PROJECT_NAME,
    lifespan=lifespan
)

app.include_router(jobs_router, prefix="/api/v1/jobs", tags=["jobs"])
app.include_router(admin_router, prefix="/api/v1/admin", tags=["admin"])
app.include_router(metrics_router, tags=["metrics"])

@app.get("/health")
async def health():
    return {"status": "ok"}
