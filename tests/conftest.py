# -*- coding: utf-8 -*-

"""
Shared fixtures for the Z.ai SDK tests.

Most HTTP traffic goes through httpx.MockTransport handlers and streaming
bodies are fakes that count how often they are closed. The live_server
fixture is the exception: a loopback server for behavior that only shows
up on a real socket.
"""

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Iterable, Iterator, List, Optional

import httpx
import pytest

from zai.client import ZaiClient
from zai.config import ClientConfig

TEST_API_KEY = "test-key-id.test-key-secret"
TEST_BASE_URL = "https://api.test.local/api/paas/v4"


class RecordingBody:
    """
    Fake streaming body with the iter_bytes()/close() surface of httpx.Response.

    Yields the given chunks (optionally with a delay between them) and
    records every close() call.
    """

    def __init__(self, chunks: Iterable[bytes], delay: float = 0.0):
        self._chunks = list(chunks)
        self._delay = delay
        self._closed = threading.Event()
        self.close_count = 0

    def iter_bytes(self) -> Iterator[bytes]:
        for chunk in self._chunks:
            if self._delay and self._closed.wait(self._delay):
                return
            if self._closed.is_set():
                return
            yield chunk

    def close(self) -> None:
        self.close_count += 1
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()


class FailingBody(RecordingBody):
    """Body whose read fails after the given chunks."""

    def __init__(self, chunks: Iterable[bytes], error: Exception):
        super().__init__(chunks)
        self._error = error

    def iter_bytes(self) -> Iterator[bytes]:
        yield from super().iter_bytes()
        raise self._error


class TickingByteStream(httpx.SyncByteStream):
    """
    Server-side stream that emits one SSE event every interval seconds.

    Runs until closed (or until limit events were sent). Closing wakes the
    pending wait immediately.
    """

    def __init__(self, interval: float = 0.05, limit: Optional[int] = None):
        self._interval = interval
        self._limit = limit
        self._closed = threading.Event()
        self.close_count = 0
        self.sent = 0

    def __iter__(self) -> Iterator[bytes]:
        while not self._closed.is_set():
            if self._limit is not None and self.sent >= self._limit:
                return
            yield f'data: {{"n": {self.sent}}}\n\n'.encode("utf-8")
            self.sent += 1
            if self._closed.wait(self._interval):
                return

    def close(self) -> None:
        self.close_count += 1
        self._closed.set()


class RequestLog:
    """Collects requests seen by a mock transport, with their arrival times."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.times: List[float] = []
        self.bodies: List[bytes] = []

    def record(self, request: httpx.Request) -> None:
        self.requests.append(request)
        self.times.append(time.monotonic())
        self.bodies.append(request.read())

    @property
    def count(self) -> int:
        return len(self.requests)


@pytest.fixture
def api_key() -> str:
    """A well-formed test credential."""
    return TEST_API_KEY


@pytest.fixture
def base_url() -> str:
    return TEST_BASE_URL


@pytest.fixture
def request_log() -> RequestLog:
    return RequestLog()


@pytest.fixture
def recording_body():
    """Factory for RecordingBody instances."""
    return RecordingBody


@pytest.fixture
def failing_body():
    """Factory for FailingBody instances."""
    return FailingBody


@pytest.fixture
def ticking_stream():
    """Factory for TickingByteStream instances."""
    return TickingByteStream


@pytest.fixture
def mock_http_client():
    """
    Factory: wrap a handler into an httpx.Client over MockTransport.

    The handler receives each httpx.Request and returns an httpx.Response.
    """
    clients: List[httpx.Client] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.Client:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def make_client(mock_http_client, api_key, base_url):
    """
    Factory: a ZaiClient whose traffic goes to handler.

    Extra keyword arguments become ClientConfig fields.
    """

    def factory(handler: Callable[[httpx.Request], httpx.Response], **options) -> ZaiClient:
        config = ClientConfig(
            api_key=options.pop("api_key", api_key),
            base_url=options.pop("base_url", base_url),
            http_client=mock_http_client(handler),
        )
        return ZaiClient(config, **options)

    return factory


# ==================================================================================================
# Loopback server
# ==================================================================================================


class StallingHandler(BaseHTTPRequestHandler):
    """
    Handler that keeps the client waiting.

    /slow waits server.stall seconds before answering with JSON. Any other
    path answers with an SSE stream that sends one event and then stalls for
    server.stall seconds before the next one.
    """

    protocol_version = "HTTP/1.0"

    def log_message(self, format, *args):
        pass

    def _discard_body(self) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        if length:
            self.rfile.read(length)

    def do_GET(self):
        self._handle()

    def do_POST(self):
        self._handle()

    def _handle(self) -> None:
        self._discard_body()
        try:
            if self.path.endswith("/slow"):
                self.server.stop.wait(self.server.stall)
                body = b'{"ok": true}'
                self.send_response(200)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
                return

            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.end_headers()
            self.wfile.write(b'data: {"n": 0}\n\n')
            self.wfile.flush()
            self.server.stop.wait(self.server.stall)
            self.wfile.write(b'data: {"n": 1}\n\n')
            self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            self.close_connection = True


@pytest.fixture
def live_server():
    """
    Loopback HTTP server running StallingHandler on a background thread.

    Yields the server; its base URL is live_server.url.
    """
    server = ThreadingHTTPServer(("127.0.0.1", 0), StallingHandler)
    server.daemon_threads = True
    server.stop = threading.Event()
    server.stall = 3.0
    host, port = server.server_address[:2]
    server.url = f"http://{host}:{port}/api/paas/v4"

    thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
    thread.start()

    yield server

    server.stop.set()
    server.shutdown()
    server.server_close()


@pytest.fixture
def live_client(live_server, api_key):
    """ZaiClient talking to live_server without retries."""
    http_client = httpx.Client(trust_env=False)
    client = ZaiClient(api_key=api_key, base_url=live_server.url, max_retries=0, http_client=http_client)

    yield client

    client.close()
    http_client.close()
