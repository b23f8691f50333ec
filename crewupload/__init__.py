"""crewupload - resumable uploads of crew media to a production server.

This package provides a command-line uploader built on the tus resumable
upload protocol, supporting:
- Recursive folder picking with hidden-file filtering
- Chunked, resumable transfers with bounded retry and backoff
- A fixed number of concurrent uploads with pause, resume, and retry
- Consolidated batch progress reports
"""

__version__ = "0.1.0"

from crewupload.core.client import ApiClient
from crewupload.core.config import Config, Profile
from crewupload.core.exceptions import (
    AuthenticationError,
    AuthExpiredError,
    ConfigurationError,
    CrewUploadError,
    NetworkError,
    ProtocolError,
    ValidationError,
)
from crewupload.services.scheduler import UploadScheduler
from crewupload.uploaders.tus import TusClient

__all__ = [
    "__version__",
    "ApiClient",
    "Config",
    "Profile",
    "TusClient",
    "UploadScheduler",
    "CrewUploadError",
    "AuthenticationError",
    "AuthExpiredError",
    "ConfigurationError",
    "NetworkError",
    "ProtocolError",
    "ValidationError",
]
