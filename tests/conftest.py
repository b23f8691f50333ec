"""Pytest configuration and fixtures for crewupload tests."""

from __future__ import annotations

import base64
import itertools
import tempfile
import threading
import time
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import httpx
import pytest

from crewupload.core import config as config_module
from crewupload.core.exceptions import NetworkError
from crewupload.models.file_info import FileInfo

SERVER_URL = "https://upload.test"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's CREWUPLOAD_* variables out of tests."""
    for name in (
        config_module.ENV_URL,
        config_module.ENV_TOKEN,
        config_module.ENV_PROFILE,
        config_module.ENV_VERIFY_SSL,
        config_module.ENV_TIMEOUT,
        config_module.ENV_CHUNK_SIZE,
        config_module.ENV_MAX_CONCURRENT,
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sample_config_yaml() -> str:
    """Sample config YAML content."""
    return """
default_profile: test
output_format: table

profiles:
  test:
    url: https://upload.test
    upload_path: /files
    verify_ssl: false
    timeout: 30
    chunk_size: 1024
    max_concurrent: 2
    retry_delays: [0, 0, 0]

  production:
    url: https://upload.example.com
    verify_ssl: true
    timeout: 600
"""


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def make_file_info(name: str, size: int, root: str = "/media") -> FileInfo:
    """Picker entry for a file that need not exist on disk."""
    return FileInfo(path=f"{root}/{name}", name=name, size=size, type="video/mp4")


def decode_metadata(header: str) -> dict[str, str]:
    """Decode a tus ``Upload-Metadata`` header."""
    result = {}
    for pair in header.split(","):
        key, _, value = pair.strip().partition(" ")
        result[key] = base64.b64decode(value).decode() if value else ""
    return result


# =============================================================================
# Fake tus server (HTTP level)
# =============================================================================


class FakeTusServer:
    """In-memory tus server served through ``httpx.MockTransport``.

    Queue entries in ``fail_next`` (responses or exceptions) to be served
    before normal handling of the next request.
    """

    def __init__(self, base_url: str = SERVER_URL) -> None:
        self.base_url = base_url
        self.uploads: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.fail_next: list[httpx.Response | Exception] = []
        self.session_id = "sess-1"
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self.transport = httpx.MockTransport(self.handle)

    def requests_for(self, method: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method]

    def handle(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            failure = self.fail_next.pop(0) if self.fail_next else None

        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return failure

        path = request.url.path
        if request.method == "POST" and path == "/api/session":
            return httpx.Response(201, json={"sessionId": self.session_id})
        if request.method == "POST" and path == "/api/auth/login":
            return httpx.Response(200, json={"token": "tok-123"})
        if request.method == "POST" and path == "/api/auth/logout":
            return httpx.Response(204)
        if request.method == "OPTIONS":
            return httpx.Response(204, headers={"Tus-Version": "1.0.0"})
        if request.method == "POST" and path == "/files":
            return self._create(request)
        if path.startswith("/files/"):
            upload = self.uploads.get(path.rsplit("/", 1)[-1])
            if upload is None:
                return httpx.Response(404)
            if request.method == "HEAD":
                return httpx.Response(
                    200,
                    headers={
                        "Upload-Offset": str(len(upload["data"])),
                        "Upload-Length": str(upload["length"]),
                    },
                )
            if request.method == "PATCH":
                return self._patch(request, upload)
        return httpx.Response(405)

    def _create(self, request: httpx.Request) -> httpx.Response:
        upload_id = f"u{next(self._ids)}"
        metadata = request.headers.get("Upload-Metadata", "")
        with self._lock:
            self.uploads[upload_id] = {
                "length": int(request.headers["Upload-Length"]),
                "metadata": decode_metadata(metadata) if metadata else {},
                "data": bytearray(),
            }
        return httpx.Response(201, headers={"Location": f"/files/{upload_id}"})

    def _patch(self, request: httpx.Request, upload: dict) -> httpx.Response:
        offset = int(request.headers["Upload-Offset"])
        if offset != len(upload["data"]):
            return httpx.Response(409)
        if offset + len(request.content) > upload["length"]:
            return httpx.Response(413)
        upload["data"].extend(request.content)
        return httpx.Response(204, headers={"Upload-Offset": str(len(upload["data"]))})


@pytest.fixture
def tus_server() -> FakeTusServer:
    return FakeTusServer()


# =============================================================================
# Fake tus client (for scheduler tests)
# =============================================================================


class FakeBackend:
    """Shared server state for ``FakeTusClient`` instances.

    While ``blocking`` is set, each chunk needs a credit granted with
    ``allow(path)``; a worker waiting for one gives up when its client is
    closed, the way an in-flight request fails when its transport closes.
    """

    def __init__(self, blocking: bool = False) -> None:
        self.blocking = blocking
        self.offsets: dict[str, int] = {}
        self.sizes: dict[str, int] = {}
        self.created: list[tuple[int, dict]] = []
        self.queries: list[str] = []
        self.chunks: list[tuple[str, int]] = []
        self.failures: dict[str, list[Exception]] = defaultdict(list)
        self.credits: dict[str, int] = defaultdict(int)
        self.active = 0
        self.max_active = 0
        self._ids = itertools.count(1)
        self._cond = threading.Condition()

    def client(self) -> FakeTusClient:
        return FakeTusClient(self)

    def allow(self, path: str, chunks: int = 1) -> None:
        with self._cond:
            self.credits[path] += chunks
            self._cond.notify_all()

    def release_all(self) -> None:
        with self._cond:
            self.blocking = False
            self._cond.notify_all()

    def new_session(self, size: int, metadata: dict) -> str:
        with self._cond:
            url = f"{SERVER_URL}/files/u{next(self._ids)}"
            self.offsets[url] = 0
            self.sizes[url] = size
            self.created.append((size, dict(metadata)))
        return url

    def acquire(self, path: str, client: FakeTusClient) -> None:
        with self._cond:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            try:
                while self.blocking and self.credits[path] <= 0:
                    if client.closed:
                        raise NetworkError(path, "client closed")
                    self._cond.wait(0.01)
                if self.blocking:
                    self.credits[path] -= 1
            finally:
                self.active -= 1


class FakeTusClient:
    """Stands in for ``TusClient`` without HTTP."""

    def __init__(self, backend: FakeBackend) -> None:
        self.backend = backend
        self.closed = False

    def create_session(self, size: int, metadata: dict | None = None) -> str:
        return self.backend.new_session(size, metadata or {})

    def query_offset(self, session_url: str) -> int:
        self.backend.queries.append(session_url)
        return self.backend.offsets[session_url]

    def send_chunk(
        self,
        session_url: str,
        offset: int,
        source: str,
        max_chunk_bytes: int,
        upload_length: int | None = None,
    ) -> int:
        backend = self.backend
        backend.acquire(str(source), self)
        if self.closed:
            raise NetworkError(session_url, "client closed")
        failures = backend.failures.get(str(source))
        if failures:
            raise failures.pop(0)
        backend.chunks.append((session_url, offset))
        new_offset = min(offset + max_chunk_bytes, backend.sizes[session_url])
        backend.offsets[session_url] = new_offset
        return new_offset

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


class RecordingConsumer:
    """Event consumer that keeps every event it is handed."""

    def __init__(self) -> None:
        self.events: list = []
        self.ticks = 0

    def handle(self, event) -> None:
        self.events.append(event)

    def tick(self) -> None:
        self.ticks += 1

    def of_type(self, cls: type) -> list:
        return [e for e in self.events if isinstance(e, cls)]
