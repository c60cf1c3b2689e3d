from enum import StrEnum, auto

class JobStatus(StrEnum):
    QUEUED = auto()      # Created by the client, waiting for the executor
    RUNNING = auto()     # Picked up by the executor
    SUCCEEDED = auto()   # Completed, result is set
    FAILED = auto()      # Completed, error is set

class JobKind(StrEnum):
    AUTO_TAG = auto()
    PRODUCT_SHOT = auto()
    HEADSHOT_GENERATE = auto()
    BODY_SHOT_GENERATE = auto()
    OUTFIT_SUGGEST = auto()
    REFERENCE_MATCH = auto()
    OUTFIT_RENDER = auto()
    OUTFIT_MANNEQUIN = auto()
    LOOKBOOK_GENERATE = auto()
    BATCH = auto()
    WARDROBE_ITEM_RENDER = auto()
    WARDROBE_ITEM_TAG = auto()
    WARDROBE_ITEM_GENERATE = auto()

ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.RUNNING)
TERMINAL_STATUSES = (JobStatus.SUCCEEDED, JobStatus.FAILED)

# Poll strategies, also used to key circuit breaker bookkeeping
class PollStrategy(StrEnum):
    BACKOFF = auto()
    FIXED_INTERVAL = auto()
