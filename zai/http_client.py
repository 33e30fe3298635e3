# -*- coding: utf-8 -*-

# Z.ai SDK Core
# Copyright (C) 2025 zai-sdk-core contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
HTTP core of the Z.ai SDK.

Composes request URLs from the configured base, attaches default headers,
runs request and response middleware and performs a single transport
round-trip over a pooled httpx.Client. Non-2xx responses are returned as-is;
status classification happens in the API client.
"""

import socket
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import httpx
from loguru import logger

from zai.cancel import CancelToken
from zai.config import (
    DEFAULT_BASE_URL,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_TIMEOUT,
    KEEPALIVE_EXPIRY,
    MAX_CONNECTIONS,
    MAX_KEEPALIVE_CONNECTIONS,
    SOURCE_CHANNEL,
    SOURCE_CHANNEL_HEADER,
    USER_AGENT,
)
from zai.errors import APIConnectionError, APITimeoutError, RequestCancelledError

_default_logger = logger

# Request middleware mutates the request in place; raising aborts the call.
RequestMiddleware = Callable[[httpx.Request], None]

# Response middleware inspects the response; raising closes it and aborts the call.
ResponseMiddleware = Callable[[httpx.Response], None]


def shutdown_connection(response: Any, logger: Optional[Any] = None) -> None:
    """
    Shut down the socket under a response so a blocked body read returns.

    Closing an httpx.Response from another thread does not interrupt a
    recv() in progress; shutting the socket down does. Responses without a
    network stream (mock transports, fake bodies) are left alone.

    Args:
        response: httpx.Response or any object with an extensions mapping
        logger: loguru-compatible logger
    """
    extensions = getattr(response, "extensions", None)
    network_stream = extensions.get("network_stream") if extensions else None
    if network_stream is None:
        return
    sock = network_stream.get_extra_info("socket")
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        (logger or _default_logger).debug("[HTTP] Socket already shut down: {}", e)


@dataclass
class HttpClientConfig:
    """
    Settings of the HTTP core.

    Attributes:
        base_url: API root, treated as a directory
        timeout: Total per-request timeout in seconds
        connect_timeout: TCP connect timeout in seconds
        max_connections: Pool size across all hosts
        max_keepalive_connections: Idle connections kept open
        keepalive_expiry: Seconds an idle connection is kept
        source_channel: Value of the x-source-channel header
        user_agent: Value of the User-Agent header
        verify: TLS verification flag passed to httpx
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_connections: int = MAX_CONNECTIONS
    max_keepalive_connections: int = MAX_KEEPALIVE_CONNECTIONS
    keepalive_expiry: float = KEEPALIVE_EXPIRY
    source_channel: str = SOURCE_CHANNEL
    user_agent: str = USER_AGENT
    verify: bool = True

    def default_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.source_channel:
            headers[SOURCE_CHANNEL_HEADER] = self.source_channel
        return headers


class HttpClient:
    """
    Single-attempt HTTP executor with middleware.

    The underlying httpx.Client is safe for concurrent use, so one HttpClient
    can serve many threads. Middleware lists should be populated before the
    client is shared.

    Example:
        >>> client = HttpClient(HttpClientConfig(base_url="https://api.z.ai/api/paas/v4"))
        >>> request = client.build_request("GET", "/models")
        >>> response = client.send(request)
    """

    def __init__(
        self,
        config: Optional[HttpClientConfig] = None,
        http_client: Optional[httpx.Client] = None,
        logger: Optional[Any] = None,
    ):
        """
        Initializes the HTTP core.

        Args:
            config: Settings, defaults when omitted
            http_client: Pre-built client (custom transport); the internal pool is not created then
            logger: loguru-compatible logger
        """
        self.config = config or HttpClientConfig()
        self._logger = logger or _default_logger
        self._request_middlewares: List[RequestMiddleware] = []
        self._response_middlewares: List[ResponseMiddleware] = []
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            timeout=self._default_timeout(),
            limits=httpx.Limits(
                max_connections=self.config.max_connections,
                max_keepalive_connections=self.config.max_keepalive_connections,
                keepalive_expiry=self.config.keepalive_expiry,
            ),
            verify=self.config.verify,
        )

    def _default_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.config.timeout, connect=self.config.connect_timeout)

    @property
    def client(self) -> httpx.Client:
        return self._client

    def add_request_middleware(self, middleware: RequestMiddleware) -> None:
        self._request_middlewares.append(middleware)

    def add_response_middleware(self, middleware: ResponseMiddleware) -> None:
        self._response_middlewares.append(middleware)

    def build_url(self, path: str) -> httpx.URL:
        """
        Compose the absolute URL for path.

        Absolute http(s) paths are returned unchanged. Otherwise the base
        path is treated as a directory and one leading slash of path is
        dropped, so "/chat" and "chat" resolve alike. Query and fragment of
        the base URL are discarded; attach queries with params instead.

        Args:
            path: Relative API path or absolute URL

        Returns:
            httpx.URL
        """
        if path.startswith(("http://", "https://")):
            return httpx.URL(path)

        base = httpx.URL(self.config.base_url)
        base_path = base.path if base.path.endswith("/") else base.path + "/"
        if path.startswith("/"):
            path = path[1:]
        return base.copy_with(path=base_path + path, query=None, fragment=None)

    def build_request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        content: Any = None,
        data: Optional[Mapping[str, Any]] = None,
        files: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Request:
        """
        Build a request with default headers applied.

        Defaults never override headers set by the caller or by httpx
        itself, so multipart bodies keep their boundary Content-Type.
        """
        request = httpx.Request(
            method.upper(),
            self.build_url(path),
            params=params,
            headers=headers,
            json=json,
            content=content,
            data=data,
            files=files,
        )
        for name, value in self.config.default_headers().items():
            if name not in request.headers:
                request.headers[name] = value
        return request

    def send(
        self,
        request: httpx.Request,
        *,
        cancel: Optional[CancelToken] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """
        Perform one round-trip.

        With a cancel token the attempt runs on a worker thread and the
        caller returns as soon as the token fires, even while the transport
        is blocked on the network.

        Args:
            request: Request to send; request middleware may mutate it
            cancel: Caller's cancellation token; its deadline bounds the timeout
            stream: Leave the body unread (caller must close the response)

        Returns:
            httpx.Response of any status

        Raises:
            RequestCancelledError: If cancel has fired
            APITimeoutError: If the transport timed out
            APIConnectionError: On any other transport failure
        """
        if cancel is not None:
            cancel.raise_if_cancelled()

        for middleware in self._request_middlewares:
            middleware(request)

        self._apply_timeout(request, cancel)

        self._logger.debug("[HTTP] {} {}", request.method, request.url)
        if cancel is None:
            with self._transport_errors(request, None):
                response = self._client.send(request, stream=stream)
        else:
            response = self._send_cancellable(request, cancel, stream)

        self._logger.debug("[HTTP] {} {} -> {}", request.method, request.url, response.status_code)

        for middleware in self._response_middlewares:
            try:
                middleware(response)
            except Exception:
                response.close()
                raise

        return response

    @contextmanager
    def _transport_errors(self, request: httpx.Request, cancel: Optional[CancelToken]) -> Iterator[None]:
        """Map httpx transport failures to SDK errors; a fired token wins."""
        try:
            yield
        except httpx.TimeoutException as e:
            if cancel is not None:
                cancel.raise_if_cancelled()
            self._logger.warning("[HTTP] Timeout: {} {}", request.method, request.url)
            raise APITimeoutError(request=request) from e
        except httpx.TransportError as e:
            if cancel is not None:
                cancel.raise_if_cancelled()
            self._logger.warning("[HTTP] Transport error on {} {}: {}", request.method, request.url, e)
            raise APIConnectionError(f"connection error: {e}", request=request) from e

    def _send_cancellable(self, request: httpx.Request, cancel: CancelToken, stream: bool) -> httpx.Response:
        """
        Run one attempt on a worker thread and wait for it or for cancel.

        On cancel the caller raises right away. A response whose body is
        still being read gets its socket shut down; an attempt that completes
        after the caller left closes its own response.
        """
        lock = threading.Lock()
        wake = threading.Event()
        state: Dict[str, Any] = {"response": None, "error": None, "finished": False, "abandoned": False}

        def attempt() -> None:
            response = None
            error: Optional[BaseException] = None
            try:
                with self._transport_errors(request, cancel):
                    response = self._client.send(request, stream=True)
                    with lock:
                        state["response"] = response
                    if not stream:
                        response.read()
            except Exception as e:
                error = e
            finally:
                with lock:
                    state["finished"] = True
                    state["error"] = error
                    abandoned = state["abandoned"]
                if response is not None and (abandoned or error is not None):
                    response.close()
                if abandoned and error is not None:
                    self._logger.debug("[HTTP] Abandoned attempt on {} ended with: {}", request.url, error)
                wake.set()

        def on_cancel() -> None:
            with lock:
                pending = None if state["finished"] else state["response"]
            wake.set()
            if pending is not None:
                shutdown_connection(pending, self._logger)

        unregister = cancel.add_callback(on_cancel)
        try:
            # A token that fired during registration never starts the attempt
            if not wake.is_set():
                threading.Thread(target=attempt, name="zai-http-attempt", daemon=True).start()
                wake.wait()
        finally:
            unregister()

        with lock:
            if not state["finished"]:
                state["abandoned"] = True
                self._logger.debug("[HTTP] Cancelled in flight: {} {}", request.method, request.url)
                raise cancel.error() or RequestCancelledError()
            response, error = state["response"], state["error"]

        if error is not None:
            raise error

        if cancel.cancelled:
            response.close()
            cancel.raise_if_cancelled()
        return response

    def _apply_timeout(self, request: httpx.Request, cancel: Optional[CancelToken]) -> None:
        timeout = self._default_timeout()
        remaining = cancel.remaining() if cancel is not None else None
        if remaining is not None and remaining < self.config.timeout:
            timeout = httpx.Timeout(
                remaining,
                connect=min(self.config.connect_timeout, remaining),
            )
        request.extensions["timeout"] = timeout.as_dict()

    def close(self) -> None:
        """Release pooled connections if the pool is ours."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
