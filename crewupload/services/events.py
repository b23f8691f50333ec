"""Typed upload events and their single consumer.

Workers publish lifecycle and progress events onto one FIFO channel. The
``BatchMonitor`` consumes them, keeps batch totals, forwards each event to
the UI sink, and emits consolidated ``BatchReport``s to the monitoring
reporter.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass
from typing import Optional, Protocol

from crewupload.models.progress import BatchReport, TaskStats
from crewupload.models.task import SETTLED_STATUSES, UploadStatus
from crewupload.uploaders.constants import DEFAULT_REPORT_INTERVAL

logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class UploadEvent:
    """Base class for everything published on the bus."""

    task_id: str


@dataclass(frozen=True)
class TaskQueued(UploadEvent):
    bytes_total: int


@dataclass(frozen=True)
class TaskStarted(UploadEvent):
    bytes_uploaded: int
    bytes_total: int


@dataclass(frozen=True)
class TaskProgress(UploadEvent):
    bytes_uploaded: int
    bytes_total: int
    speed: float
    average_speed: float


@dataclass(frozen=True)
class TaskPaused(UploadEvent):
    bytes_uploaded: int


@dataclass(frozen=True)
class TaskCompleted(UploadEvent):
    bytes_total: int


@dataclass(frozen=True)
class TaskFailed(UploadEvent):
    message: str


@dataclass(frozen=True)
class TaskReset(UploadEvent):
    """Task returned to pending for a fresh attempt."""


@dataclass(frozen=True)
class TaskRemoved(UploadEvent):
    pass


@dataclass(frozen=True)
class AuthExpired(UploadEvent):
    """The server rejected the bearer token while uploading ``task_id``."""


LIFECYCLE_EVENTS = (TaskStarted, TaskPaused, TaskCompleted, TaskFailed, TaskReset, TaskRemoved)


class EventConsumer(Protocol):
    def handle(self, event: UploadEvent) -> None: ...

    def tick(self) -> None: ...


# =============================================================================
# Batch Monitor
# =============================================================================


class BatchMonitor:
    """Aggregates per-task progress into batch totals."""

    def __init__(
        self,
        *,
        reporter: Optional[Callable[[BatchReport], None]] = None,
        sink: Optional[Callable[[UploadEvent], None]] = None,
        interval: float = DEFAULT_REPORT_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize batch monitor.

        Args:
            reporter: Receives consolidated reports.
            sink: Receives every event, in order (typically the UI).
            interval: Seconds between periodic reports while uploading.
            clock: Monotonic time source.
        """
        self.reporter = reporter
        self.sink = sink
        self.interval = interval
        self._clock = clock
        self.stats: dict[str, TaskStats] = {}
        self.running = False
        self.last_report: Optional[BatchReport] = None
        self._last_report_at = 0.0
        self.auth_expired = False

    def handle(self, event: UploadEvent) -> None:
        """Apply one event, forward it, and report if it changed the batch state."""
        stats = self.stats.get(event.task_id)

        if isinstance(event, TaskQueued):
            self.stats[event.task_id] = TaskStats(bytes_total=event.bytes_total)
        elif isinstance(event, TaskRemoved):
            self.stats.pop(event.task_id, None)
        elif isinstance(event, AuthExpired):
            self.auth_expired = True
        elif stats is not None:
            self._apply(stats, event)

        if self.sink is not None:
            self.sink(event)

        if isinstance(event, TaskStarted):
            self.running = True
            self.auth_expired = False

        if isinstance(event, LIFECYCLE_EVENTS) and self.running:
            if all(s.status in SETTLED_STATUSES for s in self.stats.values()):
                self.running = False
                self.emit(final=True)
            else:
                self.emit()

    @staticmethod
    def _apply(stats: TaskStats, event: UploadEvent) -> None:
        if isinstance(event, TaskStarted):
            stats.status = UploadStatus.UPLOADING
            stats.bytes_uploaded = event.bytes_uploaded
            stats.bytes_total = event.bytes_total
        elif isinstance(event, TaskProgress):
            stats.bytes_uploaded = event.bytes_uploaded
            stats.bytes_total = event.bytes_total
            stats.speed = event.speed
        elif isinstance(event, TaskPaused):
            stats.status = UploadStatus.PAUSED
            stats.bytes_uploaded = event.bytes_uploaded
            stats.speed = 0.0
        elif isinstance(event, TaskCompleted):
            stats.status = UploadStatus.COMPLETED
            stats.bytes_uploaded = event.bytes_total
            stats.speed = 0.0
        elif isinstance(event, TaskFailed):
            stats.status = UploadStatus.ERROR
            stats.speed = 0.0
        elif isinstance(event, TaskReset):
            stats.status = UploadStatus.PENDING
            stats.bytes_uploaded = 0
            stats.speed = 0.0

    def tick(self) -> None:
        """Emit a periodic report if one is due."""
        if self.running and self._clock() - self._last_report_at >= self.interval:
            self.emit()

    def snapshot(self, *, final: bool = False) -> BatchReport:
        """Build a report from the current totals."""
        active = [s for s in self.stats.values() if s.status is UploadStatus.UPLOADING]
        return BatchReport(
            timestamp=self._clock(),
            bytes_uploaded=sum(s.bytes_uploaded for s in self.stats.values()),
            bytes_total=sum(s.bytes_total for s in self.stats.values()),
            speed=sum(s.speed for s in active),
            final=final,
            counts=dict(Counter(s.status.value for s in self.stats.values())),
        )

    def emit(self, *, final: bool = False) -> BatchReport:
        """Send a report to the reporter now."""
        report = self.snapshot(final=final)
        self.last_report = report
        self._last_report_at = report.timestamp
        if self.reporter is not None:
            self.reporter(report)
        return report


# =============================================================================
# Event Bus
# =============================================================================


class EventBus:
    """FIFO channel from upload workers to a single consumer.

    Each task has one producer at a time, so events for a task arrive in
    the order they were published. Use either ``start()``/``stop()`` (a
    dispatcher thread) or ``drain()`` (caller's thread), not both at once.
    """

    def __init__(self, consumer: EventConsumer, *, poll_interval: float = 0.25) -> None:
        self.consumer = consumer
        self.poll_interval = poll_interval
        self._queue: queue.Queue[UploadEvent] = queue.Queue()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def publish(self, event: UploadEvent) -> None:
        self._queue.put(event)

    def _dispatch(self, event: UploadEvent) -> None:
        try:
            self.consumer.handle(event)
        except Exception:
            logger.exception("Event consumer failed on %s", type(event).__name__)

    def drain(self) -> int:
        """Deliver every queued event on the calling thread.

        Returns:
            Number of events delivered.
        """
        delivered = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                break
            self._dispatch(event)
            delivered += 1
        return delivered

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the dispatcher thread."""
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="crewupload-events", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the dispatcher and deliver whatever is still queued."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.drain()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                event = self._queue.get(timeout=self.poll_interval)
            except queue.Empty:
                event = None
            if event is not None:
                self._dispatch(event)
            try:
                self.consumer.tick()
            except Exception:
                logger.exception("Periodic progress report failed")
