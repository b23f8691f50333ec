"""tus resumable-upload client.

Speaks the three tus 1.0 exchanges for a single server: create an upload
(POST), query its offset (HEAD), and send one chunk (PATCH). Retrying is
not done here; see ``crewupload.uploaders.retry``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Optional

import httpx

from crewupload.core.exceptions import (
    AuthExpiredError,
    FileSystemError,
    NetworkError,
    ProtocolError,
    RequestTimeoutError,
    ServerUnreachableError,
)
from crewupload.core.timeouts import DEFAULT_CONNECT_TIMEOUT_SECONDS, DEFAULT_HTTP_TIMEOUT_SECONDS
from crewupload.core.validation import validate_server_url
from crewupload.uploaders.common import encode_metadata, is_auth_expired_response
from crewupload.uploaders.constants import STREAM_BLOCK_SIZE, TUS_VERSION

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

OFFSET_CONTENT_TYPE = "application/offset+octet-stream"
BODY_SNIPPET_LENGTH = 200

TokenProvider = Callable[[], Optional[str]]


def _read_range(handle: BinaryIO, path: str, length: int, block_size: int) -> Iterator[bytes]:
    """Yield ``length`` bytes from the current position of ``handle``."""
    remaining = length
    while remaining > 0:
        try:
            block = handle.read(min(block_size, remaining))
        except OSError as e:
            raise FileSystemError.from_os_error(path, e) from e
        if not block:
            raise FileSystemError(path, "file shrank while uploading")
        remaining -= len(block)
        yield block


# =============================================================================
# TusClient
# =============================================================================


@dataclass
class TusClient:
    """HTTP client for the tus resumable-upload protocol.

    ``timeout`` bounds each connect, read, write and pool wait separately
    (``httpx.Timeout`` semantics), not the whole request. A chunk PATCH can
    therefore run longer than ``timeout`` as long as bytes keep moving; a
    stalled transfer fails after ``timeout`` seconds without progress.
    """

    endpoint: str
    token_provider: TokenProvider | None = None
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS
    verify_ssl: bool = True
    block_size: int = STREAM_BLOCK_SIZE
    transport: httpx.BaseTransport | None = field(default=None, repr=False)
    _client: httpx.Client | None = field(init=False, default=None, repr=False)
    _closed: bool = field(init=False, default=False, repr=False)

    def __post_init__(self) -> None:
        """Validate and normalize URL."""
        self.endpoint = validate_server_url(self.endpoint)

    # =========================================================================
    # Client Management
    # =========================================================================

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._closed:
            raise NetworkError(self.endpoint, "client closed")
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                verify=self.verify_ssl,
                follow_redirects=False,
                transport=self.transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client, failing any request in flight."""
        self._closed = True
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> TusClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Request Plumbing
    # =========================================================================

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {"Tus-Resumable": TUS_VERSION}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        content: Any = None,
    ) -> httpx.Response:
        """Execute one request, mapping transport failures to typed errors."""
        client = self._get_client()
        try:
            return client.request(method, url, headers=headers, content=content)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(url, self.timeout) from e
        except httpx.ConnectError as e:
            raise ServerUnreachableError(url, str(e) or None) from e
        except httpx.TransportError as e:
            raise NetworkError(url, str(e) or type(e).__name__) from e
        except RuntimeError as e:
            # httpx raises RuntimeError when the client is closed mid-call
            if self._closed:
                raise NetworkError(url, "client closed") from e
            raise

    def _raise_for_response(self, resp: httpx.Response, operation: str) -> None:
        """Map an unexpected response to ``AuthExpiredError`` or ``ProtocolError``."""
        body = resp.text[:BODY_SNIPPET_LENGTH] if resp.content else ""
        url = str(resp.request.url)
        if is_auth_expired_response(resp.status_code, body):
            raise AuthExpiredError(url, resp.status_code)
        raise ProtocolError(
            f"{operation} failed: HTTP {resp.status_code}",
            url,
            status_code=resp.status_code,
            body=body,
        )

    @staticmethod
    def _parse_offset(resp: httpx.Response, *, required: bool) -> int:
        raw = resp.headers.get("Upload-Offset")
        url = str(resp.request.url)
        if raw is None:
            if required:
                raise ProtocolError("Missing Upload-Offset header", url, resp.status_code)
            return 0
        try:
            offset = int(raw)
        except ValueError as e:
            raise ProtocolError(f"Invalid Upload-Offset header: {raw!r}", url) from e
        if offset < 0:
            raise ProtocolError(f"Negative Upload-Offset header: {offset}", url)
        return offset

    # =========================================================================
    # Wire Operations
    # =========================================================================

    def create_session(self, size: int, metadata: Mapping[str, str] | None = None) -> str:
        """Create a resumable upload on the server.

        Args:
            size: Declared upload length in bytes.
            metadata: Key/value pairs sent as ``Upload-Metadata``.

        Returns:
            Absolute URL of the new upload.

        Raises:
            AuthExpiredError: If the token is rejected.
            ProtocolError: On any other unexpected response.
            NetworkError: On transport failure.
        """
        headers = self._headers(
            {
                "Upload-Length": str(size),
                "Content-Type": OFFSET_CONTENT_TYPE,
            }
        )
        if metadata:
            headers["Upload-Metadata"] = encode_metadata(metadata)

        resp = self._send("POST", self.endpoint, headers=headers)
        if resp.status_code != 201:
            self._raise_for_response(resp, "Create upload")

        location = resp.headers.get("Location")
        if not location:
            raise ProtocolError("Create upload response has no Location header", self.endpoint, 201)

        session_url = str(httpx.URL(self.endpoint).join(location))
        logger.debug("Created upload %s (%d bytes)", session_url, size)
        return session_url

    def query_offset(self, session_url: str) -> int:
        """Ask the server how many bytes it has accepted for an upload.

        Returns:
            Server-side offset; 0 if the server omits the header.

        Raises:
            AuthExpiredError: If the token is rejected.
            ProtocolError: On any other unexpected response.
            NetworkError: On transport failure.
        """
        resp = self._send("HEAD", session_url, headers=self._headers())
        if resp.status_code not in (200, 204):
            self._raise_for_response(resp, "Query offset")
        return self._parse_offset(resp, required=False)

    def send_chunk(
        self,
        session_url: str,
        offset: int,
        source: Path | str,
        max_chunk_bytes: int,
        *,
        upload_length: int | None = None,
    ) -> int:
        """Stream one chunk of ``source`` starting at ``offset``.

        The chunk is read from disk in ``block_size`` pieces while it is
        written to the socket; it is never held in memory whole. Bytes past
        ``upload_length`` are never sent, even if the file has grown since
        the session was created.

        Args:
            session_url: Upload URL returned by ``create_session``.
            offset: Byte position to send from (server-confirmed).
            source: Local file.
            max_chunk_bytes: Upper bound on bytes sent in this request.
            upload_length: ``Upload-Length`` declared for the session. Defaults
                to the current file size.

        Returns:
            New offset reported by the server.

        Raises:
            AuthExpiredError: If the token is rejected.
            ProtocolError: On any other unexpected response.
            NetworkError: On transport failure.
            FileSystemError: If the source file cannot be read or is shorter
                than ``upload_length``.
        """
        path = str(source)
        try:
            file_size = Path(path).stat().st_size
        except OSError as e:
            raise FileSystemError.from_os_error(path, e) from e

        if upload_length is None:
            upload_length = file_size
        elif file_size < upload_length:
            raise FileSystemError(
                path, f"file is {file_size} bytes, {upload_length} expected (file shrank)"
            )

        if offset > upload_length:
            raise FileSystemError(
                path, f"offset {offset} is past end of upload ({upload_length} bytes)"
            )

        length = min(max_chunk_bytes, upload_length - offset)
        headers = self._headers(
            {
                "Upload-Offset": str(offset),
                "Content-Length": str(length),
                "Content-Type": OFFSET_CONTENT_TYPE,
            }
        )

        try:
            handle = open(path, "rb")
        except OSError as e:
            raise FileSystemError.from_os_error(path, e) from e

        with handle:
            try:
                handle.seek(offset)
            except OSError as e:
                raise FileSystemError.from_os_error(path, e) from e
            resp = self._send(
                "PATCH",
                session_url,
                headers=headers,
                content=_read_range(handle, path, length, self.block_size),
            )

        if resp.status_code not in (200, 204):
            self._raise_for_response(resp, "Send chunk")

        new_offset = self._parse_offset(resp, required=True)
        if new_offset != offset + length:
            logger.warning(
                "Server reported offset %d after sending %d bytes at %d; using server value",
                new_offset,
                length,
                offset,
            )
        return new_offset
