"""Classification of job failures for differentiated UI handling."""

from typing import Optional

from ai_jobs.domain.models import AIJob
from ai_jobs.domain.states import JobStatus

# Moderation wording returned by the image model when it refuses a prompt
POLICY_BLOCK_PATTERNS = (
    "safety",
    "blocked",
    "policy",
    "harassment",
    "sexually explicit",
    "dangerous content",
    "generation blocked",
    "safety block",
)


def is_policy_block_error(message: Optional[str]) -> bool:
    if not message:
        return False
    normalized = message.lower()
    return any(pattern in normalized for pattern in POLICY_BLOCK_PATTERNS)


def classify_failure(job: AIJob) -> Optional[str]:
    """Returns "policy_block" or "error" for failed jobs, None otherwise."""
    if job.status != JobStatus.FAILED:
        return None
    if is_policy_block_error(job.error):
        return "policy_block"
    return "error"
