"""Retry controller for driving one file through the tus exchanges.

Wraps create/query/send with a bounded retry budget. Transient failures
(protocol and network errors) back off along a delay table; token expiry,
unreadable files, and cancellation stop immediately.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from crewupload.core.exceptions import (
    AuthExpiredError,
    ProtocolError,
    RetryExhaustedError,
    TransferError,
    UploadAborted,
    is_retryable,
)
from crewupload.uploaders.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAYS,
)

if TYPE_CHECKING:
    from crewupload.models.task import UploadTask
    from crewupload.services.tasks import TaskStateMachine
    from crewupload.uploaders.tus import TusClient

logger = logging.getLogger(__name__)


# =============================================================================
# Cancellation
# =============================================================================


class CancelToken:
    """Cooperative pause/abort signal for one running task.

    Checked between chunks and while waiting out a backoff delay. An abort
    request overrides an earlier pause request.
    """

    PAUSE = "pause"
    ABORT = "abort"

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = ABORT) -> None:
        if reason == self.ABORT or self.reason is None:
            self.reason = reason
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_set(self) -> None:
        if self._event.is_set():
            raise UploadAborted(self.reason or self.ABORT)


SleepFn = Callable[[float, CancelToken], bool]


def _wait_on_token(delay: float, cancel: CancelToken) -> bool:
    return cancel.wait(delay)


# =============================================================================
# Retry Policy
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff table."""

    delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS
    max_retries: int = DEFAULT_MAX_RETRIES

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based).

        The last table entry is reused once the table runs out.
        """
        if not self.delays:
            return 0.0
        index = min(max(attempt, 1), len(self.delays)) - 1
        return self.delays[index]


# =============================================================================
# Retry Controller
# =============================================================================


class RetryController:
    """Drives one task to completion: create, query offset, send chunks."""

    def __init__(
        self,
        client: TusClient,
        policy: RetryPolicy | None = None,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        sleep: SleepFn | None = None,
        on_auth_expired: Callable[[UploadTask], None] | None = None,
        on_progress: Callable[[UploadTask], None] | None = None,
    ) -> None:
        """Initialize retry controller.

        Args:
            client: tus client owned by the calling worker.
            policy: Retry budget and delays.
            chunk_size: Maximum bytes per PATCH.
            sleep: Backoff wait; returns True if cancelled while waiting.
            on_auth_expired: Called once each time the token is rejected.
            on_progress: Called after every confirmed offset change.
        """
        self.client = client
        self.policy = policy or RetryPolicy()
        self.chunk_size = chunk_size
        self._sleep = sleep or _wait_on_token
        self.on_auth_expired = on_auth_expired
        self.on_progress = on_progress

    def run(self, machine: TaskStateMachine, cancel: CancelToken) -> None:
        """Upload until the server has every byte of the task's file.

        Raises:
            UploadAborted: On pause/abort request.
            AuthExpiredError: If the token is rejected (never retried).
            FileSystemError: If the source file cannot be read (never retried).
            RetryExhaustedError: After ``max_retries`` consecutive failures.
        """
        task = machine.task
        label = f"upload {task.display_name}"

        while True:
            try:
                self._transfer(machine, cancel)
                return
            except AuthExpiredError:
                logger.error("%s: token rejected, not retrying", label)
                if self.on_auth_expired is not None:
                    self.on_auth_expired(task)
                raise
            except TransferError as e:
                if cancel.is_set():
                    raise UploadAborted(cancel.reason or CancelToken.ABORT) from e
                if not is_retryable(e):
                    raise

                attempt = machine.count_retry()
                if attempt > self.policy.max_retries:
                    raise RetryExhaustedError(label, attempt, e) from e

                delay = self.policy.delay_for(attempt)
                logger.warning(
                    "%s: %s on attempt %d/%d, retrying in %gs",
                    label,
                    e,
                    attempt,
                    self.policy.max_retries + 1,
                    delay,
                )
                if self._sleep(delay, cancel):
                    raise UploadAborted(cancel.reason or CancelToken.ABORT) from e

    def _transfer(self, machine: TaskStateMachine, cancel: CancelToken) -> None:
        """One pass: (create) → query offset → send chunks until done."""
        task = machine.task
        cancel.raise_if_set()

        if task.session_url is None:
            machine.attach_session(self.client.create_session(task.size, task.metadata))

        # The server is the authority on how many bytes it has kept
        session_url = task.session_url
        machine.record_offset(self.client.query_offset(session_url))
        self._report(task)

        while task.offset < task.size:
            cancel.raise_if_set()
            previous = task.offset
            new_offset = self.client.send_chunk(
                session_url, previous, task.path, self.chunk_size, upload_length=task.size
            )
            if new_offset <= previous:
                raise ProtocolError(
                    f"Server did not advance offset past {previous}",
                    session_url,
                )
            machine.record_offset(new_offset)
            machine.reset_retries()
            logger.debug("%s: %d/%d bytes", task.display_name, task.offset, task.size)
            self._report(task)

    def _report(self, task: UploadTask) -> None:
        if self.on_progress is not None:
            self.on_progress(task)
