"""Shared timeout defaults.

Chunk transfers move up to tens of megabytes per request over links that may
be slow, so read/write timeouts are measured in minutes.
"""

# Seconds allowed to establish a TCP/TLS connection
DEFAULT_CONNECT_TIMEOUT_SECONDS = 30

# Seconds allowed for a single read or write on an open connection
DEFAULT_HTTP_TIMEOUT_SECONDS = 600

# Seconds allowed for small JSON API calls (login, session creation)
DEFAULT_API_TIMEOUT_SECONDS = 30
