"""Input validation helpers for crewupload."""

from __future__ import annotations

from collections.abc import Sequence
from urllib.parse import urlparse

from crewupload.core.exceptions import InvalidURLError, ValidationError

# 5 MiB is the smallest chunk most tus servers accept for non-final chunks
MIN_CHUNK_SIZE = 5 * 1024 * 1024
MAX_CONCURRENCY = 64


def validate_server_url(url: str) -> str:
    """Validate and normalize a server URL.

    Args:
        url: URL to validate.

    Returns:
        URL without a trailing slash.

    Raises:
        InvalidURLError: If the URL is not http(s) or has no host.
    """
    if not url or not url.strip():
        raise InvalidURLError(url or "", "URL is empty")

    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError(url, "scheme must be http or https")
    if not parsed.netloc:
        raise InvalidURLError(url, "missing host")

    return url.rstrip("/")


def validate_chunk_size(chunk_size: int, *, minimum: int = MIN_CHUNK_SIZE) -> int:
    """Validate the maximum number of bytes sent per PATCH request."""
    if not isinstance(chunk_size, int) or isinstance(chunk_size, bool):
        raise ValidationError("Chunk size must be an integer", field="chunk_size", value=chunk_size)
    if chunk_size < minimum:
        raise ValidationError(
            f"Chunk size must be at least {minimum} bytes",
            field="chunk_size",
            value=chunk_size,
        )
    return chunk_size


def validate_concurrency(value: int) -> int:
    """Validate the number of simultaneous uploads."""
    if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= MAX_CONCURRENCY:
        raise ValidationError(
            f"Concurrency must be between 1 and {MAX_CONCURRENCY}",
            field="max_concurrent",
            value=value,
        )
    return value


def validate_timeout(value: float) -> float:
    """Validate a timeout in seconds."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValidationError("Timeout must be a positive number", field="timeout", value=value)
    return value


def validate_retry_delays(delays: Sequence[float]) -> tuple[float, ...]:
    """Validate a retry delay table.

    Returns:
        Delays as a tuple.
    """
    result = tuple(delays)
    if not result:
        raise ValidationError("Retry delays must not be empty", field="retry_delays", value=delays)
    for delay in result:
        if isinstance(delay, bool) or not isinstance(delay, (int, float)) or delay < 0:
            raise ValidationError(
                "Retry delays must be non-negative numbers",
                field="retry_delays",
                value=delays,
            )
    return result
