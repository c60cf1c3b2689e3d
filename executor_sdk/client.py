import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

EXECUTOR_PATH = "/executor"
BODY_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class TriggerResponse:
    """What happened to one trigger call. Exactly one of the flags describes it."""
    accepted: bool = False
    timed_out: bool = False
    status_code: Optional[int] = None
    body: str = ""
    transport_error: Optional[str] = None


class ExecutorClient:
    """
    Sends "start job X" notifications to the executor.

    The call is bounded by `timeout` end to end. Running out of time is an
    expected outcome: the executor keeps working on the job after we stop
    listening, so callers must confirm execution by polling.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def trigger(self, job_id: str, access_token: str) -> TriggerResponse:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        try:
            resp = await asyncio.wait_for(
                self.client.post(EXECUTOR_PATH, json={"job_id": job_id}, headers=headers),
                timeout=self.timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.info("Trigger for job %s timed out after %ss, job keeps running server-side", job_id, self.timeout)
            return TriggerResponse(timed_out=True)
        except httpx.HTTPError as e:
            logger.error("Trigger for job %s failed: url=%s error=%s", job_id, self.base_url, e)
            return TriggerResponse(transport_error=f"{type(e).__name__}: {e}")

        if resp.is_success:
            return TriggerResponse(accepted=True, status_code=resp.status_code)

        body = resp.text[:BODY_PREVIEW_CHARS]
        logger.warning(
            "Trigger for job %s returned non-OK response status=%s body=%s",
            job_id,
            resp.status_code,
            body,
        )
        return TriggerResponse(status_code=resp.status_code, body=body)

    async def close(self):
        await self.client.aclose()
