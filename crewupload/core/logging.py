"""Logging utilities for crewupload.

Provides structured logging with an audit trail of upload outcomes.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Any, Optional

# =============================================================================
# Constants
# =============================================================================

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
AUDIT_LOGGER_NAME = "crewupload.audit"


# =============================================================================
# Logger Setup
# =============================================================================


def setup_logging(
    level: int = logging.WARNING,
    *,
    quiet: bool = False,
    verbose: bool = False,
) -> None:
    """Configure logging for crewupload.

    Args:
        level: Base logging level.
        quiet: If True, only show errors.
        verbose: If True, show debug messages.
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stderr,
    )

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__).

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)


# =============================================================================
# Log Context
# =============================================================================


class LogContext:
    """Context manager for structured logging with context fields."""

    def __init__(
        self,
        operation: str,
        logger: Optional[logging.Logger] = None,
        **context: Any,
    ):
        """Initialize log context.

        Args:
            operation: Name of the operation.
            logger: Logger instance.
            **context: Additional context fields.
        """
        self.operation = operation
        self.logger = logger or get_logger(__name__)
        self.context = context
        self.start_time: Optional[datetime] = None

    def _context_str(self) -> str:
        return ", ".join(f"{k}={v}" for k, v in self.context.items())

    def __enter__(self) -> "LogContext":
        """Enter context and log start."""
        self.start_time = datetime.now()
        self.logger.info("Starting %s (%s)", self.operation, self._context_str())
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context and log completion."""
        duration = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0

        if exc_type:
            self.logger.error(
                "%s failed after %.2fs: %s",
                self.operation,
                duration,
                exc_val,
            )
        else:
            self.logger.info("%s completed in %.2fs", self.operation, duration)

    def log(self, level: int, message: str, *args: Any) -> None:
        """Log a message with context.

        Args:
            level: Log level.
            message: Message format string.
            *args: Format arguments.
        """
        full_message = f"[{self.operation}] {message} ({self._context_str()})"
        self.logger.log(level, full_message, *args)

    def info(self, message: str, *args: Any) -> None:
        """Log info message."""
        self.log(logging.INFO, message, *args)

    def warning(self, message: str, *args: Any) -> None:
        """Log warning message."""
        self.log(logging.WARNING, message, *args)


# =============================================================================
# Audit Logger
# =============================================================================


class AuditLogger:
    """Logger for the audit trail of upload outcomes."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        """Initialize audit logger.

        Args:
            logger: Logger instance.
        """
        self.logger = logger or logging.getLogger(AUDIT_LOGGER_NAME)

    def log_upload(
        self,
        task_id: str,
        *,
        filename: str,
        size: int,
        status: str,
        session: Optional[str] = None,
        project: Optional[str] = None,
        crew: Optional[str] = None,
        error: Optional[str] = None,
        duration: Optional[float] = None,
    ) -> None:
        """Log the outcome of one file upload.

        Args:
            task_id: Upload task ID.
            filename: Display filename.
            size: Declared size in bytes.
            status: Final task status.
            session: Crew session ID.
            project: Project name.
            crew: Crew name.
            error: Error message if the upload failed.
            duration: Seconds spent uploading.
        """
        audit_record: dict[str, Any] = {
            "timestamp": datetime.now().isoformat(),
            "task": task_id,
            "filename": filename,
            "size": size,
            "status": status,
        }

        if session:
            audit_record["session"] = session
        if project:
            audit_record["project"] = project
        if crew:
            audit_record["crew"] = crew
        if error:
            audit_record["error"] = error
        if duration is not None:
            audit_record["duration"] = round(duration, 2)

        level = logging.WARNING if error else logging.INFO
        self.logger.log(level, "AUDIT: %s", audit_record)


def get_audit_logger() -> AuditLogger:
    """Get the audit logger instance.

    Returns:
        AuditLogger instance.
    """
    return AuditLogger()
