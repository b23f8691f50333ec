"""Progress models for tracking upload batches.

Provides dataclasses for per-task progress snapshots and consolidated
batch reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from crewupload.models.task import UploadStatus


@dataclass
class TaskStats:
    """Last known progress of one task, as seen by the event consumer."""

    bytes_uploaded: int = 0
    bytes_total: int = 0
    speed: float = 0.0
    status: UploadStatus = UploadStatus.PENDING

    @property
    def percent(self) -> float:
        """Calculate completion percentage."""
        if self.bytes_total == 0:
            return 0.0
        return (self.bytes_uploaded / self.bytes_total) * 100


@dataclass
class BatchReport:
    """Consolidated progress of every queued task."""

    timestamp: float
    bytes_uploaded: int = 0
    bytes_total: int = 0
    speed: float = 0.0
    final: bool = False
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def percent(self) -> float:
        """Calculate completion percentage."""
        if self.bytes_total == 0:
            return 0.0
        return (self.bytes_uploaded / self.bytes_total) * 100

    @property
    def bytes_remaining(self) -> int:
        return max(0, self.bytes_total - self.bytes_uploaded)

    @property
    def eta_seconds(self) -> float | None:
        """Seconds until all bytes are sent at the current speed."""
        if self.speed <= 0:
            return None
        return self.bytes_remaining / self.speed

    @property
    def completed(self) -> int:
        return self.counts.get(UploadStatus.COMPLETED.value, 0)

    @property
    def failed(self) -> int:
        return self.counts.get(UploadStatus.ERROR.value, 0)

    @property
    def active(self) -> int:
        return self.counts.get(UploadStatus.UPLOADING.value, 0)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        return {
            "bytes_uploaded": self.bytes_uploaded,
            "bytes_total": self.bytes_total,
            "percent": round(self.percent, 1),
            "speed": round(self.speed, 1),
            "final": self.final,
            "counts": dict(self.counts),
        }


@dataclass
class UploadSummary:
    """Summary of a finished upload run."""

    total: int
    succeeded: int
    failed: int
    duration: float
    bytes_uploaded: int = 0
    auth_expired: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.auth_expired and self.succeeded == self.total

    @property
    def throughput(self) -> float:
        """Average bytes per second over the whole run."""
        if self.duration == 0:
            return 0.0
        return self.bytes_uploaded / self.duration
