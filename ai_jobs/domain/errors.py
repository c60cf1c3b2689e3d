from typing import Optional


class JobError(Exception):
    """Base exception for AI job orchestration errors."""
    code = "error"


class AuthError(JobError):
    code = "auth"


class ReauthenticationRequired(AuthError):
    """The executor rejected the session token; the user has to sign in again."""
    code = "reauthenticate"

    def __init__(self, message: str = "Session expired, please sign in again"):
        super().__init__(message)


class ConfigurationError(JobError):
    code = "configuration"


class TransportError(JobError):
    code = "transport"

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransportTimeout(TransportError):
    # Never surfaced to callers, a timed out trigger counts as delivered
    code = "transport_timeout"


class StoreError(JobError):
    code = "store"


class JobNotFoundError(JobError):
    code = "not_found"

    def __init__(self, job_id):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class PollingTimeoutError(JobError):
    code = "timeout"

    def __init__(self, job_id, detail: str = ""):
        message = f"Polling timeout for job {job_id}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.job_id = job_id


class AlreadyPollingError(JobError):
    code = "already_polling"

    def __init__(self, job_id):
        super().__init__(f"Job {job_id} already being polled")
        self.job_id = job_id


class CircuitBreakerOpenError(JobError):
    code = "circuit_open"

    def __init__(self, job_id, failures: int):
        super().__init__(f"Circuit breaker open for job {job_id}: too many failures ({failures})")
        self.job_id = job_id
        self.failures = failures
