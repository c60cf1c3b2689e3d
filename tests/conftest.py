import httpx
import pytest
from sqlalchemy import update

from ai_jobs.auth.security import StaticSessionProvider
from ai_jobs.db.models import AIJobRecord
from ai_jobs.db.session import build_engine, build_session_factory, create_tables
from ai_jobs.domain.errors import StoreError
from ai_jobs.services.execution import ExecutionTrigger
from ai_jobs.services.orchestrator import JobOrchestrator
from ai_jobs.settings import Settings
from ai_jobs.stores.sql import SqlJobStore

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"
EXECUTOR_URL = "http://executor.test"


class FakeClock:
    """Monotonic clock that only moves when the code under test sleeps."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingStore(SqlJobStore):
    """SqlJobStore that counts reads and lets a test act right after the nth one."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.reads = 0
        self.fail_reads = 0
        self.after_read = {}

    async def get_job(self, job_id):
        self.reads += 1
        if self.fail_reads:
            self.fail_reads -= 1
            raise StoreError("database unavailable")
        job = await super().get_job(job_id)
        hook = self.after_read.pop(self.reads, None)
        if hook is not None:
            await hook()
        return job


class FakeExecutor:
    """Stands in for the executor endpoint behind an httpx.MockTransport."""

    def __init__(self):
        self.calls = []
        self.status_code = 202
        self.body = '{"ok": true}'
        self.transport = httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return httpx.Response(self.status_code, text=self.body)


@pytest.fixture
def settings():
    return Settings(
        SQLALCHEMY_DATABASE_URI=TEST_DB_URL,
        EXECUTOR_URL=EXECUTOR_URL,
        DEV_MODE=False,
        REST_URL="",
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings.SQLALCHEMY_DATABASE_URI)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return RecordingStore(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def set_job_state(session_factory):
    """Writes a row directly, the way the executor would."""

    async def _set(job_id, status=None, **values):
        if status is not None:
            values["status"] = str(status)
        async with session_factory() as session:
            await session.execute(update(AIJobRecord).where(AIJobRecord.id == job_id).values(**values))
            await session.commit()

    return _set


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def session_provider():
    return StaticSessionProvider("token-abc")


@pytest.fixture
async def trigger(session_provider, settings, executor):
    trigger = ExecutionTrigger(session_provider, settings, transport=executor.transport)
    yield trigger
    await trigger.close()


@pytest.fixture
async def orchestrator(store, trigger, settings, clock):
    orchestrator = JobOrchestrator(store, trigger, settings=settings, sleep=clock.sleep, clock=clock)
    yield orchestrator
    await orchestrator.close()
