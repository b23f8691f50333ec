"""tus upload transport for crewupload.

This module provides the pieces that move bytes for one file:
- tus client (create upload, query offset, send chunk)
- retry controller (bounded backoff around the tus exchanges)

Queueing and concurrency live in `crewupload.services`; use
`UploadScheduler` from `crewupload.services.scheduler` as the public API.
"""

from crewupload.uploaders.common import (
    CONTENT_TYPES,
    collect_files,
    encode_metadata,
    expand_paths,
    file_info_for,
    guess_content_type,
    is_auth_expired_response,
)
from crewupload.uploaders.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REPORT_INTERVAL,
    DEFAULT_RETRY_DELAYS,
    TUS_VERSION,
)
from crewupload.uploaders.retry import CancelToken, RetryController, RetryPolicy
from crewupload.uploaders.tus import TusClient

__all__ = [
    # Constants
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_CONCURRENT",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_REPORT_INTERVAL",
    "DEFAULT_RETRY_DELAYS",
    "TUS_VERSION",
    # Common utilities
    "CONTENT_TYPES",
    "collect_files",
    "encode_metadata",
    "expand_paths",
    "file_info_for",
    "guess_content_type",
    "is_auth_expired_response",
    # Transport
    "TusClient",
    "CancelToken",
    "RetryController",
    "RetryPolicy",
]
