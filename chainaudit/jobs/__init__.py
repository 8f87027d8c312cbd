"""Job queue protocol and the in-memory implementation."""

from .memory_queue import InMemoryJobHandle, InMemoryJobQueue
from .protocol import (
    JOB_TYPE_CROSS_PLATFORM,
    JOB_TYPE_MULTI_PLATFORM,
    JOB_TYPE_PLATFORM,
    JOB_TYPES,
    JobContext,
    JobHandle,
    JobHandler,
    JobPriority,
    JobQueue,
    JobState,
)

__all__ = [
    "InMemoryJobHandle",
    "InMemoryJobQueue",
    "JOB_TYPE_CROSS_PLATFORM",
    "JOB_TYPE_MULTI_PLATFORM",
    "JOB_TYPE_PLATFORM",
    "JOB_TYPES",
    "JobContext",
    "JobHandle",
    "JobHandler",
    "JobPriority",
    "JobQueue",
    "JobState",
]
