"""
Run orchestration.

- GeoEventOrchestrator: per-provider cycle and whole-run driver
- BoundedQueue: at most N providers in flight, FIFO admission
- InProcessRunLock, LeaseRunLock: one run at a time
"""

from geoevent_alerts.pipeline.lock import (
    DEFAULT_LOCK_NAME,
    InProcessRunLock,
    LeaseRunLock,
    RunLock,
)
from geoevent_alerts.pipeline.orchestrator import (
    GeoEventOrchestrator,
    PipelineOptions,
    ProviderResult,
    RunSummary,
    SUCCESS_MESSAGE,
)
from geoevent_alerts.pipeline.queue import BoundedQueue, TaskResult

__all__ = [
    "GeoEventOrchestrator",
    "PipelineOptions",
    "ProviderResult",
    "RunSummary",
    "SUCCESS_MESSAGE",
    "BoundedQueue",
    "TaskResult",
    "RunLock",
    "InProcessRunLock",
    "LeaseRunLock",
    "DEFAULT_LOCK_NAME",
]
