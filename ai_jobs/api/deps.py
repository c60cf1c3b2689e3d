from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request

from ai_jobs.auth.security import get_bearer_token
from ai_jobs.services.orchestrator import JobOrchestrator

def get_orchestrator(request: Request) -> JobOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Orchestrator not initialized")
    return orchestrator

# Dependency for the per-app orchestrator
Orchestrator = Annotated[JobOrchestrator, Depends(get_orchestrator)]
BearerToken = Annotated[Optional[str], Depends(get_bearer_token)]
