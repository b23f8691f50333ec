"""Service layer for crewupload.

Provides the upload task state machine, the concurrency scheduler, and the
event channel that reports progress to the UI.
"""

from __future__ import annotations

from .events import (
    AuthExpired,
    BatchMonitor,
    EventBus,
    TaskCompleted,
    TaskFailed,
    TaskPaused,
    TaskProgress,
    TaskQueued,
    TaskRemoved,
    TaskReset,
    TaskStarted,
    UploadEvent,
)
from .scheduler import UploadScheduler
from .tasks import TaskStateMachine, TaskWorker

__all__ = [
    "UploadScheduler",
    "TaskStateMachine",
    "TaskWorker",
    "EventBus",
    "BatchMonitor",
    "UploadEvent",
    "TaskQueued",
    "TaskStarted",
    "TaskProgress",
    "TaskPaused",
    "TaskCompleted",
    "TaskFailed",
    "TaskReset",
    "TaskRemoved",
    "AuthExpired",
]
