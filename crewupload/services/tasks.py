"""Upload task state machine and worker.

``TaskStateMachine`` is the only code that changes an ``UploadTask``'s
status, offset, or speed. ``TaskWorker`` runs one admitted task on a pool
thread: it drives the retry controller, maps the outcome onto a transition,
and reports back to the scheduler exactly once.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from crewupload.core.exceptions import (
    AuthExpiredError,
    CrewUploadError,
    InvalidTransitionError,
    ProtocolError,
    TransferError,
    UploadAborted,
    describe_error,
)
from crewupload.models.task import UploadStatus, UploadTask
from crewupload.services.events import (
    TaskCompleted,
    TaskFailed,
    TaskPaused,
    TaskProgress,
    UploadEvent,
)
from crewupload.uploaders.constants import SPEED_SAMPLE_INTERVAL
from crewupload.uploaders.retry import CancelToken, RetryController

if TYPE_CHECKING:
    from crewupload.uploaders.tus import TusClient

logger = logging.getLogger(__name__)

# Weight of the newest sample in the smoothed instantaneous speed
SPEED_SMOOTHING = 0.5

_TRANSITIONS: dict[UploadStatus, frozenset[UploadStatus]] = {
    UploadStatus.PENDING: frozenset({UploadStatus.UPLOADING}),
    UploadStatus.UPLOADING: frozenset(
        {UploadStatus.COMPLETED, UploadStatus.ERROR, UploadStatus.PAUSED}
    ),
    UploadStatus.PAUSED: frozenset({UploadStatus.UPLOADING}),
    UploadStatus.ERROR: frozenset({UploadStatus.PENDING}),
    UploadStatus.COMPLETED: frozenset(),
}


# =============================================================================
# State Machine
# =============================================================================


class TaskStateMachine:
    """Owns every mutation of one ``UploadTask``."""

    def __init__(self, task: UploadTask, clock: Callable[[], float] = time.monotonic) -> None:
        self.task = task
        self._clock = clock

    def can_move(self, target: UploadStatus) -> bool:
        return target in _TRANSITIONS[self.task.status]

    def _move(self, target: UploadStatus) -> None:
        if not self.can_move(target):
            raise InvalidTransitionError(self.task.id, self.task.status.value, target.value)
        logger.debug("Task %s: %s -> %s", self.task.id, self.task.status.value, target.value)
        self.task.status = target

    # =========================================================================
    # Transitions
    # =========================================================================

    def start(self) -> None:
        """pending/paused -> uploading. Caller must hold a concurrency slot."""
        self._move(UploadStatus.UPLOADING)
        now = self._clock()
        task = self.task
        task.started_at = now
        task.finished_at = None
        task.sample_time = now
        task.sample_offset = task.offset
        task.speed = 0.0
        task.average_speed = 0.0
        task.retry_count = 0

    def pause(self) -> None:
        """uploading -> paused. Offset is kept and re-verified on resume."""
        self._move(UploadStatus.PAUSED)
        self._stop_clock()

    def complete(self) -> None:
        """uploading -> completed, only once the server holds every byte.

        Raises:
            ProtocolError: If the confirmed offset is short of the file size.
        """
        if self.task.offset != self.task.size:
            raise ProtocolError(
                f"Cannot complete at offset {self.task.offset} of {self.task.size}",
                self.task.session_url,
            )
        self._move(UploadStatus.COMPLETED)
        self._stop_clock()

    def fail(self, message: str) -> None:
        """uploading -> error."""
        self._move(UploadStatus.ERROR)
        self.task.error_message = message
        self._stop_clock()

    def reset_for_retry(self) -> None:
        """error -> pending, discarding the server session for a fresh attempt."""
        self._move(UploadStatus.PENDING)
        task = self.task
        task.error_message = None
        task.offset = 0
        task.session_url = None
        task.retry_count = 0
        task.speed = 0.0
        task.average_speed = 0.0
        task.started_at = None
        task.finished_at = None
        task.sample_time = None
        task.sample_offset = 0

    def _stop_clock(self) -> None:
        self.task.finished_at = self._clock()
        self.task.speed = 0.0

    # =========================================================================
    # Bookkeeping while uploading
    # =========================================================================

    def attach_session(self, session_url: str) -> None:
        """Record the upload URL returned by the server.

        Raises:
            CrewUploadError: If the task already has a different session.
        """
        current = self.task.session_url
        if current is not None and current != session_url:
            raise CrewUploadError(
                f"Task {self.task.id} already has upload session {current}",
                {"task": self.task.id},
            )
        self.task.session_url = session_url

    def record_offset(self, offset: int) -> None:
        """Store a server-confirmed offset and refresh speed figures.

        Raises:
            ProtocolError: If the offset falls outside ``[0, size]``.
        """
        task = self.task
        if not 0 <= offset <= task.size:
            raise ProtocolError(
                f"Server offset {offset} outside 0..{task.size}",
                task.session_url,
            )
        if offset < task.offset:
            logger.warning(
                "Task %s: server offset %d is behind local offset %d; using server value",
                task.id,
                offset,
                task.offset,
            )
        task.offset = offset
        self._update_speed(self._clock())

    def _update_speed(self, now: float) -> None:
        task = self.task
        if task.started_at is not None:
            elapsed = now - task.started_at
            task.average_speed = task.offset / elapsed if elapsed > 0 else 0.0

        if task.sample_time is None:
            task.sample_time = now
            task.sample_offset = task.offset
            return

        interval = now - task.sample_time
        if interval < SPEED_SAMPLE_INTERVAL:
            return

        instant = max(0, task.offset - task.sample_offset) / interval
        if task.speed > 0:
            instant = SPEED_SMOOTHING * instant + (1 - SPEED_SMOOTHING) * task.speed
        task.speed = instant
        task.sample_time = now
        task.sample_offset = task.offset

    def count_retry(self) -> int:
        """Increment and return the consecutive failure count."""
        self.task.retry_count += 1
        return self.task.retry_count

    def reset_retries(self) -> None:
        self.task.retry_count = 0


# =============================================================================
# Worker
# =============================================================================


class TaskWorker:
    """Runs one admitted task to a terminal or paused state."""

    def __init__(
        self,
        machine: TaskStateMachine,
        client: TusClient,
        controller: RetryController,
        *,
        publish: Callable[[UploadEvent], None],
        on_finished: Callable[[TaskWorker], None],
    ) -> None:
        self.machine = machine
        self.client = client
        self.controller = controller
        self.cancel = CancelToken()
        self._publish = publish
        self._on_finished = on_finished
        self.auth_expired = False

    @property
    def task(self) -> UploadTask:
        return self.machine.task

    def request_pause(self) -> None:
        """Stop after abandoning the current request; the task stays resumable."""
        self.cancel.cancel(CancelToken.PAUSE)
        self.client.close()

    def request_abort(self) -> None:
        """Stop and discard; closes the connection in flight."""
        self.cancel.cancel(CancelToken.ABORT)
        self.client.close()

    def publish_progress(self, task: UploadTask) -> None:
        self._publish(
            TaskProgress(
                task.id,
                bytes_uploaded=task.offset,
                bytes_total=task.size,
                speed=task.speed,
                average_speed=task.average_speed,
            )
        )

    def run(self) -> None:
        """Worker thread entry point."""
        task = self.task
        try:
            self.controller.run(self.machine, self.cancel)
        except UploadAborted as e:
            self._stopped(e.reason)
        except AuthExpiredError as e:
            self.auth_expired = True
            self._failed(e)
        except TransferError as e:
            self._failed(e)
        except Exception as e:
            if self.cancel.is_set():
                self._stopped(self.cancel.reason)
            else:
                logger.exception("Unexpected failure uploading %s", task.display_name)
                self._failed(e)
        else:
            self.machine.complete()
            logger.info("Uploaded %s (%d bytes)", task.display_name, task.size)
            self._publish(TaskCompleted(task.id, bytes_total=task.size))
        finally:
            self.client.close()
            self._on_finished(self)

    def _stopped(self, reason: str | None) -> None:
        task = self.task
        if reason == CancelToken.PAUSE:
            self.machine.pause()
            logger.info("Paused %s at %d/%d bytes", task.display_name, task.offset, task.size)
            self._publish(TaskPaused(task.id, bytes_uploaded=task.offset))
        else:
            logger.info("Aborted %s", task.display_name)

    def _failed(self, exc: BaseException) -> None:
        task = self.task
        message = describe_error(exc)
        logger.error("Upload of %s failed: %s", task.display_name, exc)
        self.machine.fail(message)
        self._publish(TaskFailed(task.id, message=message))
