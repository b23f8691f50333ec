"""Shared constants for uploader modules.

Chunk size, concurrency, and retry delays are policy defaults; every one of
them can be overridden per profile in the config file.
"""

# =============================================================================
# Server Defaults
# =============================================================================

DEFAULT_SERVER_URL = "https://upload.turbo.net.au"

# tus creation endpoint, relative to the server URL
DEFAULT_UPLOAD_PATH = "/files"

# tus protocol version sent in the Tus-Resumable header
TUS_VERSION = "1.0.0"

# =============================================================================
# Transfer Defaults
# =============================================================================

# Maximum bytes sent in one PATCH request (50 MiB)
DEFAULT_CHUNK_SIZE = 50 * 1024 * 1024

# Bytes read from disk per write to the socket while streaming a chunk
STREAM_BLOCK_SIZE = 1024 * 1024

# Simultaneous uploads across the whole process
DEFAULT_MAX_CONCURRENT = 8

# Seconds to wait before each retry; the last entry is reused
DEFAULT_RETRY_DELAYS = (1.0, 3.0, 10.0)

# Retries after the first failure before a task is failed
DEFAULT_MAX_RETRIES = 3

# =============================================================================
# Progress Defaults
# =============================================================================

# Seconds between consolidated progress reports
DEFAULT_REPORT_INTERVAL = 2.0

# Minimum seconds between instantaneous speed samples
SPEED_SAMPLE_INTERVAL = 0.1
