"""Exception hierarchy for crewupload.

Provides typed exceptions for different failure modes with clear error messages.
"""

from __future__ import annotations

import errno
from typing import Any


class CrewUploadError(Exception):
    """Base exception for all crewupload errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(CrewUploadError):
    """Error in configuration (missing, invalid, or malformed)."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ProfileNotFoundError(ConfigurationError):
    """Requested profile does not exist."""

    def __init__(self, profile: str):
        super().__init__(f"Profile not found: {profile}", field="profile", value=profile)
        self.profile = profile


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(CrewUploadError):
    """Input validation failed."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidURLError(ValidationError):
    """Invalid URL format."""

    def __init__(self, url: str, reason: str = ""):
        msg = f"Invalid URL: {url}"
        if reason:
            msg = f"{msg} - {reason}"
        super().__init__(msg, field="url", value=url)
        self.url = url
        self.reason = reason


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthenticationError(CrewUploadError):
    """Authentication failed."""

    def __init__(self, url: str | None = None, reason: str = ""):
        msg = "Authentication failed"
        if url:
            msg = f"{msg} for {url}"
        if reason:
            msg = f"{msg}: {reason}"
        details = {"url": url} if url else {}
        super().__init__(msg, details)
        self.url = url
        self.reason = reason


class AuthExpiredError(AuthenticationError):
    """Bearer token was rejected; credentials must be refreshed."""

    retryable = False

    def __init__(self, url: str | None = None, status_code: int | None = None):
        reason = "Token expired or invalid - please login again"
        if status_code:
            reason = f"{reason} (HTTP {status_code})"
        super().__init__(url, reason)
        self.status_code = status_code


# =============================================================================
# Transfer Errors
# =============================================================================


class TransferError(CrewUploadError):
    """Base class for failures of a single upload transfer."""

    retryable = True

    def __init__(self, message: str, url: str | None = None):
        details = {"url": url} if url else {}
        super().__init__(message, details)
        self.url = url


class ProtocolError(TransferError):
    """Server rejected the request or answered with an unexpected shape."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        body: str = "",
    ):
        super().__init__(message, url)
        self.status_code = status_code
        self.body = body
        if status_code is not None:
            self.details["status_code"] = status_code


class RequestTimeoutError(ProtocolError):
    """Request timed out."""

    def __init__(self, url: str, timeout: float | None = None):
        msg = f"Request timed out: {url}"
        if timeout:
            msg = f"Request timed out after {timeout:g}s: {url}"
        super().__init__(msg, url)
        self.timeout = timeout


class NetworkError(TransferError):
    """Network-level error (DNS, TCP, TLS, connection reset)."""

    def __init__(self, url: str, cause: str | None = None):
        msg = f"Network error talking to {url}"
        if cause:
            msg = f"{msg}: {cause}"
        super().__init__(msg, url)
        self.cause = cause


class ServerUnreachableError(NetworkError):
    """Server is not reachable."""

    def __init__(self, url: str, cause: str | None = None):
        super().__init__(url, cause or "server unreachable")


class FileSystemError(TransferError):
    """Source file is missing or unreadable."""

    retryable = False

    def __init__(self, path: str, reason: str = "", errno_code: int | None = None):
        msg = f"Cannot read {path}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.path = path
        self.reason = reason
        self.errno = errno_code
        self.details["file"] = path

    @classmethod
    def from_os_error(cls, path: str, exc: OSError) -> FileSystemError:
        """Build from an ``OSError`` raised while touching ``path``."""
        return cls(path, exc.strerror or str(exc), exc.errno)


class RetryExhaustedError(TransferError):
    """All retry attempts failed."""

    retryable = False

    def __init__(self, operation: str, attempts: int, last_error: Exception | None = None):
        msg = f"Operation '{operation}' failed after {attempts} attempts"
        if last_error:
            msg = f"{msg}: {last_error}"
        super().__init__(msg)
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


# =============================================================================
# Task Errors
# =============================================================================


class UploadAborted(CrewUploadError):
    """Upload stopped by a pause or abort request. Not a failure."""

    def __init__(self, reason: str = "abort"):
        super().__init__(f"Upload {reason} requested")
        self.reason = reason


class InvalidTransitionError(CrewUploadError):
    """Task state transition not allowed from the current state."""

    def __init__(self, task_id: str, current: str, target: str):
        super().__init__(
            f"Cannot move task {task_id} from {current} to {target}",
            {"task": task_id},
        )
        self.task_id = task_id
        self.current = current
        self.target = target


class TaskNotFoundError(CrewUploadError):
    """No task with the given id is registered."""

    def __init__(self, task_id: str):
        super().__init__(f"Upload task not found: {task_id}", {"task": task_id})
        self.task_id = task_id


# =============================================================================
# Human-readable messages
# =============================================================================

OVERLOADED_STATUS_CODES = {429, 502, 503, 504}


def is_retryable(exc: BaseException) -> bool:
    """Return True if a transfer failure may succeed when attempted again."""
    return isinstance(exc, TransferError) and exc.retryable


def describe_error(exc: BaseException) -> str:
    """Translate a failure into a message suitable for an end user."""
    if isinstance(exc, RetryExhaustedError) and exc.last_error is not None:
        return describe_error(exc.last_error)
    if isinstance(exc, AuthenticationError):
        return "Session expired. Please log in again."
    if isinstance(exc, FileSystemError):
        if exc.errno in (errno.EACCES, errno.EPERM):
            return f"Permission denied reading {exc.path}"
        if exc.errno == errno.ENOENT:
            return f"File not found: {exc.path}"
        return f"Could not read file: {exc.reason or exc.path}"
    if isinstance(exc, PermissionError):
        return "Permission denied"
    if isinstance(exc, RequestTimeoutError):
        return "The upload timed out. Check your connection and try again."
    if isinstance(exc, NetworkError):
        return "Network unreachable. Check your internet connection."
    if isinstance(exc, ProtocolError):
        if exc.status_code in OVERLOADED_STATUS_CODES:
            return "The server is busy. Please try again shortly."
        if exc.status_code == 413:
            return "The file is too large for the server."
        if exc.status_code is not None:
            return f"The server rejected the upload (HTTP {exc.status_code})."
        return f"Unexpected server response: {exc.message}"
    return f"Upload failed: {exc}"
