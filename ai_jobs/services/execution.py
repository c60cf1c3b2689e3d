"""
Execution Trigger: tells the executor a queued job is ready.

Notify, don't wait. A successful trigger only means the request was sent
(or timed out while the executor kept working); it never proves the job
will run. Completion is always confirmed by polling.
"""

import logging
from typing import Optional

import httpx

from ai_jobs.api.v1.metrics import TRIGGER_TOTAL
from ai_jobs.auth.security import SessionProvider
from ai_jobs.domain.errors import (
    AuthError,
    ConfigurationError,
    JobError,
    ReauthenticationRequired,
    TransportError,
    TransportTimeout,
)
from ai_jobs.domain.models import Outcome
from ai_jobs.settings import Settings, settings as default_settings
from executor_sdk import ExecutorClient, TriggerResponse

logger = logging.getLogger(__name__)

INVALID_TOKEN_MARKER = "invalid token"


class ExecutionTrigger:
    def __init__(
        self,
        session_provider: SessionProvider,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.session_provider = session_provider
        self.settings = settings or default_settings
        self._transport = transport
        self._clients: dict[str, ExecutorClient] = {}

    def resolve_base_url(self) -> str:
        base_url = self.settings.executor_base_url()
        if not base_url:
            raise ConfigurationError("EXECUTOR_URL is not set and DEV_MODE is off")
        if not base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Invalid executor URL: {base_url}")
        return base_url

    def _client_for(self, base_url: str) -> ExecutorClient:
        client = self._clients.get(base_url)
        if client is None:
            client = ExecutorClient(base_url, timeout=self.settings.TRIGGER_TIMEOUT_SECONDS, transport=self._transport)
            self._clients[base_url] = client
        return client

    async def trigger_execution(self, job_id: str, access_token: Optional[str] = None) -> Outcome[None]:
        """
        Asks the executor to start `job_id`.

        `access_token` overrides the session provider, e.g. when relaying a
        request made by another service on behalf of a user.
        """
        token = access_token or await self.session_provider.get_access_token()
        if not token:
            TRIGGER_TOTAL.labels(outcome="auth").inc()
            return Outcome.failure(AuthError("No active session"))

        try:
            base_url = self.resolve_base_url()
        except ConfigurationError as e:
            logger.error("Cannot trigger job %s: %s", job_id, e)
            TRIGGER_TOTAL.labels(outcome="configuration").inc()
            return Outcome.failure(e)

        response = await self._client_for(base_url).trigger(job_id, token)
        error = self.classify_response(job_id, response)

        if error is None:
            TRIGGER_TOTAL.labels(outcome="accepted").inc()
            logger.info("Triggered execution of job %s", job_id)
            return Outcome.success()

        if isinstance(error, TransportTimeout):
            # The executor keeps running the job; polling confirms it
            TRIGGER_TOTAL.labels(outcome="timed_out").inc()
            logger.info("%s, treating as triggered", error)
            return Outcome.success()

        if isinstance(error, ReauthenticationRequired):
            TRIGGER_TOTAL.labels(outcome="reauthenticate").inc()
        elif error.status_code is None:
            TRIGGER_TOTAL.labels(outcome="transport").inc()
        else:
            TRIGGER_TOTAL.labels(outcome="rejected").inc()
        return Outcome.failure(error)

    def classify_response(self, job_id: str, response: TriggerResponse) -> Optional[JobError]:
        """Maps one executor response to the error it represents, None when accepted."""
        if response.timed_out:
            return TransportTimeout(f"Trigger for job {job_id} timed out")

        if response.accepted:
            return None

        if response.transport_error:
            return TransportError(f"Failed to trigger job {job_id}: {response.transport_error}")

        if response.status_code == 401 and INVALID_TOKEN_MARKER in response.body.lower():
            return ReauthenticationRequired()

        return TransportError(
            f"Executor rejected job {job_id} with status {response.status_code}",
            status_code=response.status_code,
            body=response.body,
        )

    async def close(self):
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
