"""Core modules for crewupload."""

from crewupload.core.auth import AuthManager
from crewupload.core.client import ApiClient
from crewupload.core.config import CONFIG_DIR, CONFIG_FILE, Config, Profile
from crewupload.core.exceptions import (
    AuthenticationError,
    AuthExpiredError,
    ConfigurationError,
    CrewUploadError,
    FileSystemError,
    NetworkError,
    ProtocolError,
    RetryExhaustedError,
    TransferError,
    ValidationError,
    describe_error,
)
from crewupload.core.logging import LogContext, get_audit_logger, get_logger, setup_logging
from crewupload.core.output import (
    OutputFormat,
    console,
    format_file_size,
    format_speed,
    format_time,
    format_time_remaining,
    print_error,
    print_json,
    print_output,
    print_success,
    print_table,
    print_warning,
)
from crewupload.core.validation import (
    validate_chunk_size,
    validate_concurrency,
    validate_retry_delays,
    validate_server_url,
    validate_timeout,
)

__all__ = [
    # Exceptions
    "CrewUploadError",
    "AuthenticationError",
    "AuthExpiredError",
    "ConfigurationError",
    "ValidationError",
    "TransferError",
    "ProtocolError",
    "NetworkError",
    "FileSystemError",
    "RetryExhaustedError",
    "describe_error",
    # Validation
    "validate_server_url",
    "validate_chunk_size",
    "validate_concurrency",
    "validate_timeout",
    "validate_retry_delays",
    # Config
    "Config",
    "Profile",
    "CONFIG_DIR",
    "CONFIG_FILE",
    # Client
    "ApiClient",
    # Auth
    "AuthManager",
    # Output
    "OutputFormat",
    "print_output",
    "print_table",
    "print_json",
    "print_error",
    "print_warning",
    "print_success",
    "console",
    "format_file_size",
    "format_speed",
    "format_time",
    "format_time_remaining",
    # Logging
    "get_logger",
    "get_audit_logger",
    "setup_logging",
    "LogContext",
]
