"""Upload scheduler: task registry and concurrency slots.

The scheduler owns every queued ``UploadTask`` and admits them onto a
``ThreadPoolExecutor`` at most ``max_concurrent`` at a time. While a batch
run is active, each finished, failed, or paused task frees a slot for the
next waiting one.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Optional

from crewupload.core.exceptions import CrewUploadError, TaskNotFoundError
from crewupload.core.logging import AuditLogger
from crewupload.core.validation import validate_concurrency
from crewupload.models.file_info import FileInfo
from crewupload.models.progress import UploadSummary
from crewupload.models.task import SETTLED_STATUSES, UploadStatus, UploadTask, WAITING_STATUSES
from crewupload.services.events import (
    AuthExpired,
    EventBus,
    TaskQueued,
    TaskRemoved,
    TaskReset,
    TaskStarted,
    UploadEvent,
)
from crewupload.services.tasks import TaskStateMachine, TaskWorker
from crewupload.uploaders.constants import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_CONCURRENT
from crewupload.uploaders.retry import RetryController, RetryPolicy, SleepFn

if TYPE_CHECKING:
    from crewupload.core.auth import AuthManager
    from crewupload.uploaders.tus import TusClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], "TusClient"]


class UploadScheduler:
    """Queues upload tasks and runs them with bounded concurrency.

    Every public method is safe to call from any thread. Workers report
    back through ``_on_worker_finished``; that is the only place a slot is
    released.

    Example:
        >>> scheduler = UploadScheduler(lambda: TusClient(endpoint), bus=bus)
        >>> scheduler.add_files(expand_paths([Path("footage")]))
        >>> scheduler.start_all()
        >>> scheduler.wait()
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        retry_policy: Optional[RetryPolicy] = None,
        bus: Optional[EventBus] = None,
        auth: Optional[AuthManager] = None,
        sleep: Optional[SleepFn] = None,
        clock: Callable[[], float] = time.monotonic,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        """Initialize upload scheduler.

        Args:
            client_factory: Builds a fresh tus client for each admitted task.
            max_concurrent: Ceiling on simultaneously uploading tasks.
            chunk_size: Maximum bytes per PATCH.
            retry_policy: Retry budget and backoff table.
            bus: Event channel for lifecycle and progress events.
            auth: Token owner, invalidated when the server rejects it.
            sleep: Backoff wait (injected by tests).
            clock: Monotonic time source for speed figures.
            audit: Receives one record per settled task.
        """
        self.max_concurrent = validate_concurrency(max_concurrent)
        self.chunk_size = chunk_size
        self.retry_policy = retry_policy or RetryPolicy()
        self._client_factory = client_factory
        self._bus = bus
        self._auth = auth
        self._sleep = sleep
        self._clock = clock
        self._audit = audit

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._tasks: dict[str, UploadTask] = {}
        self._machines: dict[str, TaskStateMachine] = {}
        self._workers: dict[str, TaskWorker] = {}
        self._held: set[str] = set()
        self._readmit: set[str] = set()
        self._run_active = False
        self._auth_expired = False
        self._closed = False
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_concurrent, thread_name_prefix="crewupload-upload"
        )

    def __enter__(self) -> UploadScheduler:
        return self

    def __exit__(self, *args: object) -> None:
        self.shutdown()

    def _publish(self, event: UploadEvent) -> None:
        if self._bus is not None:
            self._bus.publish(event)

    def _require(self, task_id: str) -> UploadTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    # =========================================================================
    # Queue
    # =========================================================================

    def add_files(
        self,
        files: Iterable[FileInfo],
        metadata: Optional[Mapping[str, str]] = None,
    ) -> list[UploadTask]:
        """Queue picker entries as pending tasks.

        Files whose path is already queued are skipped.

        Args:
            files: Picker entries.
            metadata: Crew session metadata attached to every task.

        Returns:
            The newly queued tasks.
        """
        added: list[UploadTask] = []
        with self._lock:
            queued_paths = {task.path for task in self._tasks.values()}
            for info in files:
                if info.path in queued_paths:
                    logger.debug("Skipping %s: already queued", info.path)
                    continue
                task = UploadTask.from_file_info(info, metadata)
                self._tasks[task.id] = task
                self._machines[task.id] = TaskStateMachine(task, clock=self._clock)
                queued_paths.add(task.path)
                added.append(task)
                self._publish(TaskQueued(task.id, bytes_total=task.size))

        if added:
            logger.info("Queued %d file(s)", len(added))
        return added

    @property
    def tasks(self) -> list[UploadTask]:
        """Queued tasks in enqueue order."""
        with self._lock:
            return list(self._tasks.values())

    def get(self, task_id: str) -> UploadTask:
        """Look up a task.

        Raises:
            TaskNotFoundError: If no task has that ID.
        """
        with self._lock:
            return self._require(task_id)

    def counts(self) -> dict[str, int]:
        """Number of tasks per status value."""
        with self._lock:
            return dict(Counter(task.status.value for task in self._tasks.values()))

    @property
    def is_uploading(self) -> bool:
        with self._lock:
            return any(task.status is UploadStatus.UPLOADING for task in self._tasks.values())

    @property
    def active_count(self) -> int:
        """Occupied slots."""
        with self._lock:
            return len(self._workers)

    @property
    def auth_expired(self) -> bool:
        """True if any task was rejected for an expired token in this run."""
        with self._lock:
            return self._auth_expired

    # =========================================================================
    # Admission
    # =========================================================================

    def start_all(self) -> int:
        """Start a batch run: admit waiting tasks in queue order up to the ceiling.

        Returns:
            Number of tasks admitted.
        """
        with self._lock:
            self._held.clear()
            self._auth_expired = False
            self._run_active = True
            admitted = self._fill_slots_locked()
            if not self._workers:
                self._run_active = False
        logger.info("Started %d upload(s)", admitted)
        return admitted

    def start(self, task_id: str) -> bool:
        """Admit one waiting task if a slot is free.

        A task whose worker is still winding down (paused or failed but not
        yet released) takes that worker's slot as soon as it is released.

        Returns:
            True if the task is uploading or holds a slot, False if it has to wait.

        Raises:
            TaskNotFoundError: If no task has that ID.
        """
        with self._lock:
            task = self._require(task_id)
            worker = self._workers.get(task_id)
            if worker is not None:
                if task.status is UploadStatus.UPLOADING and not worker.cancel.is_set():
                    return True
                if task.status in SETTLED_STATUSES:
                    return False
                self._held.discard(task_id)
                self._readmit.add(task_id)
                return True
            if task.status not in WAITING_STATUSES:
                return False
            self._held.discard(task_id)
            if len(self._workers) >= self.max_concurrent:
                logger.info("No free slot for %s; it stays queued", task.display_name)
                return False
            self._admit_locked(task)
            return True

    resume = start

    def _fill_slots_locked(self) -> int:
        admitted = 0
        for task in list(self._tasks.values()):
            if len(self._workers) >= self.max_concurrent:
                break
            if task.id in self._workers or task.status not in WAITING_STATUSES:
                continue
            if task.id in self._held:
                continue
            self._admit_locked(task)
            admitted += 1
        return admitted

    def _admit_locked(self, task: UploadTask) -> None:
        if self._closed:
            raise CrewUploadError("Scheduler is shut down")

        machine = self._machines[task.id]
        machine.start()

        client = self._client_factory()
        controller = RetryController(
            client,
            self.retry_policy,
            chunk_size=self.chunk_size,
            sleep=self._sleep,
            on_auth_expired=self._on_auth_expired,
        )
        worker = TaskWorker(
            machine,
            client,
            controller,
            publish=self._publish,
            on_finished=self._on_worker_finished,
        )
        controller.on_progress = worker.publish_progress

        self._workers[task.id] = worker
        self._publish(TaskStarted(task.id, bytes_uploaded=task.offset, bytes_total=task.size))
        logger.debug("Admitted %s (%d/%d slots)", task.display_name, len(self._workers), self.max_concurrent)
        self._executor.submit(worker.run)

    # =========================================================================
    # Pause / Retry / Remove
    # =========================================================================

    def pause(self, task_id: str) -> bool:
        """Pause an uploading task. It is not resumed automatically.

        Returns:
            True if a pause was requested.

        Raises:
            TaskNotFoundError: If no task has that ID.
        """
        with self._lock:
            self._require(task_id)
            worker = self._workers.get(task_id)
            if worker is None:
                return False
            self._held.add(task_id)
        worker.request_pause()
        return True

    def pause_all(self) -> int:
        """Pause every uploading task and end the batch run.

        Pending tasks are left untouched.

        Returns:
            Number of tasks asked to pause.
        """
        with self._lock:
            self._run_active = False
            self._readmit.clear()
            workers = list(self._workers.values())
            self._held.update(worker.task.id for worker in workers)
        for worker in workers:
            worker.request_pause()
        if workers:
            logger.info("Pausing %d upload(s)", len(workers))
        return len(workers)

    def retry(self, task_id: str) -> bool:
        """Reset a failed task and start it from offset 0.

        Returns:
            True if the task was admitted immediately.

        Raises:
            TaskNotFoundError: If no task has that ID.
            InvalidTransitionError: If the task is not in error.
        """
        with self._lock:
            task = self._require(task_id)
            self._machines[task_id].reset_for_retry()
            self._held.discard(task_id)
            self._publish(TaskReset(task_id))
        return self.start(task_id)

    def remove(self, task_id: str) -> None:
        """Drop a task, aborting its transfer if one is in flight.

        Raises:
            TaskNotFoundError: If no task has that ID.
        """
        with self._lock:
            self._require(task_id)
            worker = self._remove_locked(task_id)
        if worker is not None:
            worker.request_abort()

    def clear_completed(self) -> int:
        """Drop every completed task.

        Returns:
            Number of tasks removed.
        """
        with self._lock:
            done = [
                task.id for task in self._tasks.values() if task.status is UploadStatus.COMPLETED
            ]
            for task_id in done:
                self._remove_locked(task_id)
        return len(done)

    def clear_all(self) -> int:
        """Abort everything in flight and empty the queue.

        Returns:
            Number of tasks removed.
        """
        with self._lock:
            self._run_active = False
            task_ids = list(self._tasks)
            workers = [w for w in (self._remove_locked(t) for t in task_ids) if w is not None]
        for worker in workers:
            worker.request_abort()
        return len(task_ids)

    def _remove_locked(self, task_id: str) -> Optional[TaskWorker]:
        task = self._tasks.pop(task_id)
        self._machines.pop(task_id, None)
        self._held.discard(task_id)
        self._readmit.discard(task_id)
        self._publish(TaskRemoved(task_id))
        logger.debug("Removed %s", task.display_name)
        return self._workers.get(task_id)

    # =========================================================================
    # Worker Callbacks
    # =========================================================================

    def _on_auth_expired(self, task: UploadTask) -> None:
        if self._auth is not None:
            self._auth.invalidate()
        with self._lock:
            self._auth_expired = True
            self._run_active = False
        self._publish(AuthExpired(task.id))

    def _on_worker_finished(self, worker: TaskWorker) -> None:
        task = worker.task
        with self._idle:
            self._workers.pop(task.id, None)
            registered = task.id in self._tasks

            if registered and task.is_settled and self._audit is not None:
                self._audit.log_upload(
                    task.id,
                    filename=task.display_name,
                    size=task.size,
                    status=task.status.value,
                    session=task.metadata.get("sessionId"),
                    project=task.metadata.get("projectName"),
                    crew=task.metadata.get("crewName"),
                    error=task.error_message,
                    duration=task.duration,
                )

            if task.id in self._readmit:
                self._readmit.discard(task.id)
                if registered and not self._closed and task.status in WAITING_STATUSES:
                    self._admit_locked(task)
            if self._run_active and not self._closed:
                self._fill_slots_locked()
            if not self._workers:
                self._run_active = False
                self._idle.notify_all()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until no task holds a slot.

        Returns:
            False if the timeout expired first.
        """
        with self._idle:
            return self._idle.wait_for(lambda: not self._workers, timeout)

    def summary(self, duration: float = 0.0) -> UploadSummary:
        """Summarize the queue's outcome."""
        with self._lock:
            tasks = list(self._tasks.values())
            auth_expired = self._auth_expired
        return UploadSummary(
            total=len(tasks),
            succeeded=sum(1 for t in tasks if t.status is UploadStatus.COMPLETED),
            failed=sum(1 for t in tasks if t.status is UploadStatus.ERROR),
            duration=duration,
            bytes_uploaded=sum(t.offset for t in tasks),
            auth_expired=auth_expired,
            errors=[f"{t.display_name}: {t.error_message}" for t in tasks if t.error_message],
        )

    def shutdown(self, wait: bool = True) -> None:
        """Abort everything in flight and stop the worker pool."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._run_active = False
            workers = list(self._workers.values())
        for worker in workers:
            worker.request_abort()
        self._executor.shutdown(wait=wait)
