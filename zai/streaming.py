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
Typed iteration over server-sent event streams.

Stream[T] wraps a streaming response body, parses it into SSE events and
decodes each event's data into T. It follows a cursor protocol:

    stream = client.stream("/chat/completions", body, record_type=ChatChunk)
    while stream.next():
        if stream.err is not None:
            break
        handle(stream.current)
    if stream.err is not None:
        raise stream.err

Plain iteration works too and raises instead of latching:

    for chunk in stream:
        handle(chunk)

The body is released exactly once, on the first terminal transition
(sentinel, end of input, read error, cancellation or close()).
"""

import json
import queue
import threading
from typing import Any, Callable, Generic, Iterator, List, Optional, Protocol, TypeVar

import httpx
from loguru import logger
from pydantic import TypeAdapter

from zai.cancel import CancelToken
from zai.config import SSE_MAX_LINE_BYTES
from zai.errors import StreamClosedError, StreamDecodeError
from zai.http_client import shutdown_connection
from zai.sse import SSEEvent, SSEParser

_default_logger = logger

T = TypeVar("T")

# Decodes the data field of one event
Decoder = Callable[[str], Any]

_END = object()

# Poll interval of the chan() producer while the consumer is slow
_QUEUE_POLL_INTERVAL = 0.05


class StreamBody(Protocol):
    """What a stream needs from a response body (httpx.Response fits)."""

    def iter_bytes(self) -> Iterator[bytes]:
        ...

    def close(self) -> None:
        ...


def json_decoder(record_type: Optional[Any] = None) -> Decoder:
    """
    Build the default decoder: JSON, then conversion to record_type.

    Any type pydantic can validate works: models, dataclasses, TypedDicts,
    containers of those. Without record_type the plain JSON value is returned.
    """
    adapter = TypeAdapter(record_type) if record_type is not None else None

    def decode(data: str) -> Any:
        value = json.loads(data)
        if adapter is None:
            return value
        return adapter.validate_python(value)

    return decode


class Stream(Generic[T]):
    """
    Decoded event stream with explicit termination.

    next() is meant for a single consumer thread. close(), done, err and
    is_closed are safe from any thread, and close() may race an active
    next(): the pending call returns False promptly.

    Attributes:
        done: threading.Event set once on any terminal transition
    """

    def __init__(
        self,
        body: StreamBody,
        *,
        record_type: Optional[Any] = None,
        decoder: Optional[Decoder] = None,
        cancel: Optional[CancelToken] = None,
        max_line_size: int = SSE_MAX_LINE_BYTES,
        logger: Optional[Any] = None,
    ):
        """
        Initializes the stream.

        Args:
            body: Open response body; the stream takes ownership
            record_type: Type each event's data is decoded into
            decoder: Custom decoder, replaces the JSON decoder
            cancel: Caller's token; firing it ends the stream
            max_line_size: Longest accepted SSE line in bytes
            logger: loguru-compatible logger
        """
        self._body = body
        self._decoder = decoder or json_decoder(record_type)
        self._cancel = cancel
        self._logger = logger or _default_logger
        self._parser = SSEParser(body.iter_bytes(), max_line_size=max_line_size)

        self._lock = threading.Lock()
        self._current: Optional[T] = None
        self._err: Optional[BaseException] = None
        self._closed = False
        self._closed_by_caller = False
        self._decode_failed = False
        self.done = threading.Event()

        self._release_lock = threading.Lock()
        self._released = False

        self._unregister_cancel: Optional[Callable[[], None]] = None
        if cancel is not None:
            self._unregister_cancel = cancel.add_callback(self._on_cancel)

    # ------------------------------------------------------------------
    # Cursor protocol
    # ------------------------------------------------------------------

    def next(self) -> bool:
        """
        Advance to the next record.

        Returns:
            True when a record (or a decode error, see err) is available.
            False at the end: sentinel or end of input (err is None),
            after close() (StreamClosedError), on cancellation (the token's
            reason) or on a read error.
        """
        with self._lock:
            if self._closed:
                return self._closed_result_locked()
            decode_failed = self._decode_failed

        if decode_failed:
            return self._finish()

        if self._cancel is not None and self._cancel.cancelled:
            return self._finish(self._cancel.error())

        while True:
            try:
                event, done = self._parser.next_event()
            except Exception as e:
                return self._finish_after_read_error(e)

            if done:
                return self._finish()
            if self._skip(event):
                continue
            break

        try:
            value = self._decode_event(event)
        except Exception as e:
            error = StreamDecodeError(f"failed to decode event: {e}", data=event.data)
            error.__cause__ = e
            with self._lock:
                if self._closed:
                    return self._closed_result_locked()
                self._current = None
                self._err = error
                self._decode_failed = True
            self._logger.warning("[Stream] Failed to decode event: {}", e)
            return True

        if self._cancel is not None and self._cancel.cancelled:
            return self._finish(self._cancel.error())

        with self._lock:
            if self._closed:
                return self._closed_result_locked()
            self._current = value
        return True

    @property
    def current(self) -> Optional[T]:
        """Record produced by the last successful next()."""
        with self._lock:
            return self._current

    @property
    def err(self) -> Optional[BaseException]:
        """Latched error, None after a clean end."""
        with self._lock:
            return self._err

    @property
    def is_closed(self) -> bool:
        with self._lock:
            return self._closed

    def close(self) -> None:
        """
        Stop the stream and release the body. Safe to call repeatedly.

        Raises:
            Exception: Whatever closing the body raises, on the first call only
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._closed_by_caller = True
        self.done.set()
        self._release_body(abort=True)

    def recv(self) -> T:
        """
        Return the next record.

        Raises:
            EOFError: At a clean end of stream
            Exception: The latched error (decode, read, cancellation, closed)
        """
        if self.next():
            error = self.err
            if error is not None:
                raise error
            return self.current
        error = self.err
        if error is not None:
            raise error
        raise EOFError("end of stream")

    def all(self) -> List[T]:
        """
        Drain the stream into a list.

        Raises:
            Exception: The latched error, if the stream did not end cleanly
        """
        items: List[T] = []
        try:
            while self.next():
                if self.err is not None:
                    break
                items.append(self._current)
        finally:
            self._finish()
        error = self.err
        if error is not None:
            raise error
        return items

    def chan(self, maxsize: int = 0) -> Iterator[T]:
        """
        Read the stream on a background thread.

        Records are handed over through a queue.Queue of the given size.
        The returned iterator ends when the stream does; check err
        afterwards. Abandoning the iterator closes the stream.
        """
        items: "queue.Queue[Any]" = queue.Queue(maxsize)

        def produce() -> None:
            try:
                while self.next():
                    if self.err is not None:
                        break
                    if not self._put(items, self._current):
                        return
            finally:
                self._finish()
                self._put(items, _END)

        thread = threading.Thread(target=produce, name="zai-stream-reader", daemon=True)
        thread.start()
        return self._consume(items)

    def _put(self, items: "queue.Queue[Any]", item: Any) -> bool:
        while True:
            try:
                items.put(item, timeout=_QUEUE_POLL_INTERVAL)
                return True
            except queue.Full:
                if self._closed_by_caller:
                    return False

    def _consume(self, items: "queue.Queue[Any]") -> Iterator[T]:
        try:
            while True:
                item = items.get()
                if item is _END:
                    return
                yield item
        finally:
            self.close()

    def __iter__(self) -> Iterator[T]:
        return self

    def __next__(self) -> T:
        try:
            return self.recv()
        except EOFError:
            raise StopIteration from None

    def __enter__(self) -> "Stream[T]":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def _skip(self, event: SSEEvent) -> bool:
        return event.is_empty()

    def _decode_event(self, event: SSEEvent) -> T:
        return self._decoder(event.data)

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    def _closed_result_locked(self) -> bool:
        if self._closed_by_caller and self._err is None:
            self._err = StreamClosedError()
        return False

    def _finish_after_read_error(self, error: Exception) -> bool:
        if self._cancel is not None and self._cancel.cancelled:
            return self._finish(self._cancel.error())
        with self._lock:
            if self._closed:
                return self._closed_result_locked()
        self._logger.warning("[Stream] Read failed: {}", error)
        return self._finish(error)

    def _finish(self, error: Optional[BaseException] = None, abort: bool = False) -> bool:
        """Enter the terminal state (idempotent). Always returns False."""
        with self._lock:
            if error is not None and self._err is None:
                self._err = error
            if self._closed:
                return self._closed_result_locked()
            self._closed = True
        self.done.set()
        try:
            self._release_body(abort=abort)
        except (httpx.HTTPError, OSError) as e:
            self._logger.warning("[Stream] Failed to close response body: {}", e)
        return False

    def _on_cancel(self) -> None:
        with self._lock:
            if self._closed:
                return
        self._logger.debug("[Stream] Cancelled, closing body")
        self._finish(self._cancel.error(), abort=True)

    def _release_body(self, abort: bool = False) -> None:
        # abort shuts the socket down first so a next() blocked in a read returns
        with self._release_lock:
            if self._released:
                return
            self._released = True
        if self._unregister_cancel is not None:
            self._unregister_cancel()
        if abort:
            shutdown_connection(self._body, self._logger)
        self._body.close()


class RawStream(Stream[SSEEvent]):
    """
    Stream of undecoded SSE events.

    Every event is delivered, empty ones included, until the sentinel or the
    end of input.
    """

    def __init__(
        self,
        body: StreamBody,
        *,
        cancel: Optional[CancelToken] = None,
        max_line_size: int = SSE_MAX_LINE_BYTES,
        logger: Optional[Any] = None,
    ):
        super().__init__(body, cancel=cancel, max_line_size=max_line_size, logger=logger)

    def _skip(self, event: SSEEvent) -> bool:
        return False

    def _decode_event(self, event: SSEEvent) -> SSEEvent:
        return event
