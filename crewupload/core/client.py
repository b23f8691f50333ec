"""HTTP client for the crew upload server's JSON API.

Covers the calls made outside the tus transfer itself: password login,
logout, creating a crew session, and a connectivity check.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from crewupload.core.exceptions import (
    AuthenticationError,
    AuthExpiredError,
    NetworkError,
    ProtocolError,
    RequestTimeoutError,
    RetryExhaustedError,
    ServerUnreachableError,
    TransferError,
)
from crewupload.core.timeouts import DEFAULT_API_TIMEOUT_SECONDS
from crewupload.core.validation import validate_server_url
from crewupload.uploaders.constants import DEFAULT_UPLOAD_PATH, TUS_VERSION

# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 2
RETRYABLE_STATUS_CODES = {502, 503, 504}

LOGIN_PATH = "/api/auth/login"
LOGOUT_PATH = "/api/auth/logout"
SESSION_PATH = "/api/session"


def _error_message(resp: httpx.Response, default: str = "Request failed") -> str:
    """Pull the ``error`` field out of a JSON error body."""
    try:
        body = resp.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


# =============================================================================
# ApiClient
# =============================================================================


@dataclass
class ApiClient:
    """HTTP client for the upload server API with retry on overload."""

    base_url: str
    token: str | None = None
    timeout: float = DEFAULT_API_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    verify_ssl: bool = True
    transport: httpx.BaseTransport | None = field(default=None, repr=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    _client: httpx.Client | None = field(init=False, default=None, repr=False)

    def __post_init__(self) -> None:
        """Validate and normalize URL."""
        self.base_url = validate_server_url(self.base_url)

    # =========================================================================
    # Client Management
    # =========================================================================

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                verify=self.verify_ssl,
                follow_redirects=True,
                transport=self.transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    # =========================================================================
    # HTTP Methods
    # =========================================================================

    def _get_headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Execute HTTP request with retry logic.

        Args:
            method: HTTP method.
            path: API path.
            json: JSON body.
            headers: Additional headers.

        Returns:
            HTTP response with a 2xx status.

        Raises:
            AuthExpiredError: If the bearer token is rejected.
            ProtocolError: On a non-retryable error status.
            RetryExhaustedError: If all retries fail.
        """
        client = self._get_client()
        url = f"{self.base_url}{path}"
        last_error: TransferError | None = None

        for attempt in range(self.max_retries + 1):
            try:
                resp = client.request(
                    method,
                    path,
                    json=json,
                    headers=self._get_headers(headers),
                )

                if resp.status_code in (401, 403) and self.token:
                    raise AuthExpiredError(url, resp.status_code)

                # Retry on server errors
                if resp.status_code in RETRYABLE_STATUS_CODES:
                    last_error = ProtocolError(
                        f"HTTP {resp.status_code}",
                        url,
                        status_code=resp.status_code,
                    )
                    if attempt < self.max_retries:
                        self.sleep(RETRY_BACKOFF_BASE ** (attempt + 1))
                        continue
                    break

                if resp.is_error:
                    raise ProtocolError(
                        _error_message(resp),
                        url,
                        status_code=resp.status_code,
                        body=resp.text[:200],
                    )
                return resp

            except httpx.ConnectError:
                last_error = ServerUnreachableError(self.base_url)
            except httpx.TimeoutException:
                last_error = RequestTimeoutError(url, self.timeout)
            except httpx.TransportError as e:
                last_error = NetworkError(url, str(e) or type(e).__name__)

            # Retry with backoff
            if attempt < self.max_retries:
                self.sleep(RETRY_BACKOFF_BASE ** (attempt + 1))

        raise RetryExhaustedError(f"{method} {path}", self.max_retries + 1, last_error)

    # =========================================================================
    # Authentication
    # =========================================================================

    def login(self, password: str) -> str:
        """Exchange the crew password for a bearer token.

        Returns:
            Bearer token; also stored on the client.

        Raises:
            AuthenticationError: If the password is rejected.
        """
        self.token = None
        client = self._get_client()
        url = f"{self.base_url}{LOGIN_PATH}"
        try:
            resp = client.post(LOGIN_PATH, json={"password": password}, headers=self._get_headers())
        except httpx.ConnectError as e:
            raise ServerUnreachableError(self.base_url) from e
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(url, self.timeout) from e

        if resp.status_code in (400, 401, 403):
            raise AuthenticationError(self.base_url, _error_message(resp, "Invalid password"))
        if resp.is_error:
            raise ProtocolError(_error_message(resp), url, status_code=resp.status_code)

        try:
            token = resp.json().get("token")
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise AuthenticationError(self.base_url, "Login response did not include a token")

        self.token = str(token)
        return self.token

    def logout(self) -> None:
        """Revoke the token on the server and forget it locally. Best effort."""
        if self.token:
            try:
                self._get_client().post(LOGOUT_PATH, json={}, headers=self._get_headers())
            except httpx.HTTPError:
                pass  # Best effort
            finally:
                self.token = None

    # =========================================================================
    # Sessions
    # =========================================================================

    def create_session(self, project_name: str, crew_name: str, notes: str | None = None) -> str:
        """Register a crew upload session.

        Args:
            project_name: Production/project name.
            crew_name: Crew or department name.
            notes: Free-text notes.

        Returns:
            Session ID assigned by the server.
        """
        payload: dict[str, Any] = {"projectName": project_name, "crewName": crew_name}
        if notes:
            payload["notes"] = notes

        resp = self._request("POST", SESSION_PATH, json=payload)
        session_id = resp.json().get("sessionId")
        if not session_id:
            raise ProtocolError(
                "Session response did not include a sessionId",
                f"{self.base_url}{SESSION_PATH}",
                status_code=resp.status_code,
            )
        return str(session_id)

    def ping(self, upload_path: str = DEFAULT_UPLOAD_PATH) -> dict[str, Any]:
        """Check server connectivity and advertised tus support.

        Returns:
            Dict with server info.

        Raises:
            NetworkError: If server is unreachable.
        """
        start = time.time()
        resp = self._request("OPTIONS", upload_path, headers={"Tus-Resumable": TUS_VERSION})
        latency = int((time.time() - start) * 1000)

        return {
            "url": self.base_url,
            "status": "ok",
            "tus_version": resp.headers.get("Tus-Version", ""),
            "max_size": resp.headers.get("Tus-Max-Size"),
            "latency_ms": latency,
        }
