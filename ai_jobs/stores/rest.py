import logging
from datetime import datetime
from typing import Any, Iterable, Optional

import httpx

from ai_jobs.auth.security import SessionProvider
from ai_jobs.domain.errors import StoreError
from ai_jobs.domain.models import AIJob
from ai_jobs.domain.states import JobKind, JobStatus
from ai_jobs.stores.base import JobStore

logger = logging.getLogger(__name__)

TABLE_PATH = "/rest/v1/ai_jobs"

# Polls must see the executor's latest write, not a cached row
NO_STORE_HEADERS = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
}


class RestJobStore(JobStore):
    """
    JobStore over a PostgREST endpoint (`/rest/v1/ai_jobs`).

    Requests carry the user's session token so row-level security applies;
    without a session the anon API key is used as bearer instead.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        session_provider: SessionProvider,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session_provider = session_provider
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def _headers(self) -> dict[str, str]:
        token = await self.session_provider.get_access_token()
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
            **NO_STORE_HEADERS,
        }

    async def _request(self, method: str, params: list[tuple[str, str]], **kwargs) -> list[dict[str, Any]]:
        headers = await self._headers()
        headers.update(kwargs.pop("headers", {}))
        try:
            resp = await self.client.request(method, TABLE_PATH, params=params, headers=headers, **kwargs)
            resp.raise_for_status()
            rows = resp.json()
        except httpx.HTTPStatusError as e:
            raise StoreError(f"ai_jobs {method} rejected: {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            raise StoreError(f"ai_jobs {method} failed: {e}") from e

        if not isinstance(rows, list):
            raise StoreError(f"ai_jobs {method} returned unexpected payload")
        return rows

    @staticmethod
    def _to_job(row: Any) -> AIJob:
        try:
            return AIJob.from_row(row)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"ai_jobs returned a malformed row: {e!r}") from e

    async def create_job(self, owner_id: str, kind: JobKind, input_data: dict[str, Any]) -> AIJob:
        rows = await self._request(
            "POST",
            params=[("select", "*")],
            json={
                "owner_user_id": owner_id,
                "job_type": JobKind(kind).value,
                "input": input_data,
                "status": JobStatus.QUEUED.value,
            },
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise StoreError("ai_jobs insert returned no row")
        return self._to_job(rows[0])

    async def get_job(self, job_id: str) -> Optional[AIJob]:
        rows = await self._request("GET", params=[("id", f"eq.{job_id}"), ("select", "*")])
        return self._to_job(rows[0]) if rows else None

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
        if order_by not in ("created_at", "updated_at"):
            raise ValueError(f"Unsupported order_by: {order_by}")

        status_list = ",".join(JobStatus(s).value for s in statuses)
        params = [
            ("select", "*"),
            ("job_type", f"eq.{JobKind(kind).value}"),
            ("owner_user_id", f"eq.{owner_id}"),
            ("status", f"in.({status_list})"),
        ]
        if updated_since is not None:
            params.append(("updated_at", f"gte.{updated_since.isoformat()}"))
        params.append(("order", f"{order_by}.desc"))
        params.append(("limit", str(limit)))

        rows = await self._request("GET", params=params)
        return [self._to_job(r) for r in rows]

    async def close(self) -> None:
        await self.client.aclose()
