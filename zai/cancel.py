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
Cancellation tokens.

A CancelToken is the caller's handle for aborting an in-flight call: the
retry loop checks it before each attempt and sleeps on it between attempts,
the HTTP core clamps its timeout to the token's deadline, and a typed stream
closes its body as soon as the token fires.
"""

import threading
import time
from typing import Callable, Dict, Optional

from loguru import logger

from zai.errors import DeadlineExceededError, RequestCancelledError


class CancelToken:
    """
    Thread-safe, one-shot cancellation signal with an optional deadline.

    Once fired the token stays cancelled and error() keeps returning the
    same reason. Callbacks registered before firing run once, on the thread
    that fired the token.
    """

    def __init__(self, timeout: Optional[float] = None, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._error: Optional[RequestCancelledError] = None
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_callback_id = 0
        self._timer: Optional[threading.Timer] = None

        self._deadline: Optional[float] = None
        if timeout is not None:
            self._deadline = time.monotonic() + max(timeout, 0.0)
        if parent is not None and parent._deadline is not None:
            if self._deadline is None or parent._deadline < self._deadline:
                self._deadline = parent._deadline

        if self._deadline is not None:
            self._timer = threading.Timer(max(self._deadline - time.monotonic(), 0.0), self._expire)
            self._timer.daemon = True
            self._timer.start()

        if parent is not None:
            parent.add_callback(lambda: self._fire(parent.error() or RequestCancelledError()))

    @classmethod
    def with_timeout(cls, timeout: float) -> "CancelToken":
        return cls(timeout=timeout)

    def child(self, timeout: Optional[float] = None) -> "CancelToken":
        """Create a token that fires when this one does, or on its own deadline."""
        return CancelToken(timeout=timeout, parent=self)

    def cancel(self, reason: Optional[str] = None) -> None:
        """Fire the token. Later calls are no-ops."""
        self._fire(RequestCancelledError(reason) if reason else RequestCancelledError())

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._expire()
            return True
        return False

    @property
    def deadline(self) -> Optional[float]:
        """Deadline on the time.monotonic() clock, None without one."""
        return self._deadline

    def error(self) -> Optional[RequestCancelledError]:
        """The cancellation reason, or None while the token is live."""
        if not self.cancelled:
            return None
        return self._error

    def raise_if_cancelled(self) -> None:
        error = self.error()
        if error is not None:
            raise error

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline (never negative), None without one."""
        if self._deadline is None:
            return None
        return max(self._deadline - time.monotonic(), 0.0)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block up to timeout seconds.

        Returns:
            True if the token fired, False if the timeout elapsed first
        """
        if self._event.wait(timeout):
            return True
        return self.cancelled

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Run callback when the token fires (immediately if it already has).

        Returns:
            Function that unregisters the callback
        """
        with self._lock:
            if not self._event.is_set():
                callback_id = self._next_callback_id
                self._next_callback_id += 1
                self._callbacks[callback_id] = callback

                def unregister() -> None:
                    with self._lock:
                        self._callbacks.pop(callback_id, None)

                return unregister

        callback()
        return lambda: None

    def _expire(self) -> None:
        self._fire(DeadlineExceededError())

    def _fire(self, error: RequestCancelledError) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._error = error
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        if self._timer is not None:
            self._timer.cancel()

        logger.debug("[Cancel] Token fired: {}", error)
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning("[Cancel] Cancellation callback failed: {}", e)
