from .client import ExecutorClient, TriggerResponse

__all__ = [
    "ExecutorClient",
    "TriggerResponse",
]
