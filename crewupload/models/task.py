"""Upload task model.

An ``UploadTask`` is the unit the scheduler queues: one local file, its
resumable session on the server, and the byte offset the server has
confirmed. State changes go through ``TaskStateMachine`` in
``crewupload.services.tasks``; this module only holds the data.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from crewupload.models.file_info import FileInfo


class UploadStatus(Enum):
    """Lifecycle states of an upload task."""

    PENDING = "pending"
    UPLOADING = "uploading"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


SETTLED_STATUSES = frozenset({UploadStatus.COMPLETED, UploadStatus.ERROR})
WAITING_STATUSES = frozenset({UploadStatus.PENDING, UploadStatus.PAUSED})


def _new_task_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UploadTask:
    """One file queued for upload."""

    path: str
    name: str
    size: int
    content_type: str = "application/octet-stream"
    relative_path: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    id: str = field(default_factory=_new_task_id)

    status: UploadStatus = UploadStatus.PENDING
    offset: int = 0
    session_url: str | None = None
    error_message: str | None = None
    retry_count: int = 0

    speed: float = 0.0
    average_speed: float = 0.0
    started_at: float | None = None
    finished_at: float | None = None
    sample_time: float | None = field(default=None, repr=False)
    sample_offset: int = field(default=0, repr=False)

    @classmethod
    def from_file_info(
        cls,
        info: FileInfo,
        metadata: Mapping[str, str] | None = None,
    ) -> UploadTask:
        """Create a pending task for a picker entry.

        Args:
            info: Picker entry.
            metadata: Crew session metadata (sessionId, projectName, crewName).
        """
        task_metadata = {"filename": info.display_name, "filetype": info.type}
        task_metadata.update(metadata or {})
        return cls(
            path=info.path,
            name=info.name,
            size=info.size,
            content_type=info.type,
            relative_path=info.relative_path,
            metadata=task_metadata,
        )

    @property
    def display_name(self) -> str:
        """Relative path when picked from a folder, otherwise the file name."""
        return self.relative_path or self.name

    @property
    def progress(self) -> float:
        """Fraction of bytes confirmed by the server (0.0 - 1.0)."""
        if self.size == 0:
            return 0.0
        return self.offset / self.size

    @property
    def percent(self) -> int:
        """Progress as a rounded percentage."""
        return round(self.progress * 100)

    @property
    def remaining_bytes(self) -> int:
        return self.size - self.offset

    @property
    def is_settled(self) -> bool:
        """Completed or errored."""
        return self.status in SETTLED_STATUSES

    @property
    def duration(self) -> float | None:
        """Seconds between start and the last terminal transition."""
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "id": self.id,
            "name": self.display_name,
            "path": self.path,
            "size": self.size,
            "type": self.content_type,
            "status": self.status.value,
            "offset": self.offset,
            "progress": self.percent,
            "speed": round(self.speed, 1),
            "average_speed": round(self.average_speed, 1),
            "session_url": self.session_url,
            "error": self.error_message,
            "retry_count": self.retry_count,
        }
