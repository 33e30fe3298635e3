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
Retry wrapper around the HTTP core.

Transient failures are retried with exponential backoff and jitter:
- transport errors (except caller cancellation), for any method
- retryable status codes (429, 500, 502, 503, 504), for idempotent methods only

A Retry-After header on the response replaces the computed backoff.
Cancellation is checked before every attempt and interrupts backoff sleeps.
"""

import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

import httpx
from loguru import logger

from zai.cancel import CancelToken
from zai.config import (
    DEFAULT_MAX_RETRIES,
    IDEMPOTENT_METHODS,
    INITIAL_RETRY_DELAY,
    MAX_RETRY_DELAY,
    RETRY_AFTER_MAX_SECONDS,
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_DRAIN_LIMIT,
    RETRY_JITTER_RATIO,
    RETRYABLE_STATUS_CODES,
)
from zai.errors import APIConnectionError, ConfigError, NonRetryableBodyError
from zai.http_client import HttpClient

_default_logger = logger

_FRAMING_HEADERS = ("Content-Length", "Transfer-Encoding")

# Produces a fresh copy of a request body for each retry
BodyFactory = Callable[[], Union[bytes, Iterable[bytes]]]


@dataclass(frozen=True)
class RetryConfig:
    """
    Retry policy.

    Attributes:
        max_retries: Retries after the first attempt
        initial_backoff: Delay before the first retry (seconds)
        max_backoff: Upper bound of the computed delay (seconds)
        backoff_multiplier: Growth factor per attempt
        retryable_status_codes: Statuses retried for idempotent methods
        enable_jitter: Add up to 25% random delay
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    initial_backoff: float = INITIAL_RETRY_DELAY
    max_backoff: float = MAX_RETRY_DELAY
    backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER
    retryable_status_codes: FrozenSet[int] = RETRYABLE_STATUS_CODES
    enable_jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigError("max_retries", "max retries must not be negative")
        if self.initial_backoff < 0:
            raise ConfigError("initial_backoff", "initial backoff must not be negative")
        if self.max_backoff < self.initial_backoff:
            raise ConfigError("max_backoff", "max backoff must be at least the initial backoff")
        if self.backoff_multiplier < 1:
            raise ConfigError("backoff_multiplier", "backoff multiplier must be at least 1")


def is_idempotent_method(method: str) -> bool:
    """GET, HEAD, OPTIONS, TRACE, PUT and DELETE may be safely repeated."""
    return method.upper() in IDEMPOTENT_METHODS


def parse_retry_after(headers: Mapping[str, str], now: Optional[datetime] = None) -> Optional[float]:
    """
    Read the Retry-After header.

    Accepts a non-negative integer number of seconds or an HTTP-date in the
    future. Both forms are capped at five minutes.

    Args:
        headers: Response headers
        now: Current time for HTTP-date arithmetic (defaults to UTC now)

    Returns:
        Delay in seconds, or None when the header is absent or unusable
    """
    value = headers.get("Retry-After")
    if not value:
        return None
    value = value.strip()

    if value.isdigit():
        return min(float(value), RETRY_AFTER_MAX_SECONDS)

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    delay = (retry_at - (now or datetime.now(timezone.utc))).total_seconds()
    if delay <= 0:
        return None
    return min(delay, RETRY_AFTER_MAX_SECONDS)


class RetryableHttpClient:
    """
    Bounded retry loop over HttpClient.

    Middleware of the wrapped client runs on every attempt, so per-attempt
    headers (authorization) are re-applied.

    Example:
        >>> retrying = RetryableHttpClient(HttpClient(), RetryConfig(max_retries=2))
        >>> response = retrying.send_with_retry(retrying.client.build_request("GET", "/models"))
    """

    def __init__(
        self,
        client: HttpClient,
        config: Optional[RetryConfig] = None,
        logger: Optional[Any] = None,
        random_func: Callable[[], float] = random.random,
    ):
        self.client = client
        self.config = config or RetryConfig()
        self._logger = logger or _default_logger
        self._random = random_func

    def is_retryable_status_code(self, status_code: int) -> bool:
        return status_code in self.config.retryable_status_codes

    def should_retry(
        self,
        method: str,
        attempt: int,
        response: Optional[httpx.Response] = None,
        error: Optional[BaseException] = None,
    ) -> Tuple[bool, Optional[float]]:
        """
        Decide whether attempt (0-based) should be followed by another.

        Args:
            method: HTTP method of the request
            attempt: Index of the attempt that just finished
            response: Its response, if any
            error: Its transport error, if any

        Returns:
            Tuple (retry, retry_after) where retry_after is the server's
            Retry-After hint in seconds or None
        """
        if attempt >= self.config.max_retries:
            return False, None

        if error is not None:
            return isinstance(error, APIConnectionError), None

        if response is None:
            return False, None

        if not self.is_retryable_status_code(response.status_code):
            return False, None
        if not is_idempotent_method(method):
            return False, None
        return True, parse_retry_after(response.headers)

    def calculate_backoff(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """
        Delay before the retry that follows attempt.

        A server hint wins. Otherwise initial * multiplier ** attempt, capped
        at max_backoff, plus up to 25% jitter when enabled.
        """
        if retry_after is not None:
            return retry_after

        delay = min(
            self.config.max_backoff,
            self.config.initial_backoff * (self.config.backoff_multiplier ** attempt),
        )
        if self.config.enable_jitter:
            delay += delay * RETRY_JITTER_RATIO * self._random()
        return delay

    def send_with_retry(
        self,
        request: httpx.Request,
        *,
        cancel: Optional[CancelToken] = None,
        stream: bool = False,
        body_factory: Optional[BodyFactory] = None,
    ) -> httpx.Response:
        """
        Send request, retrying transient failures.

        Args:
            request: Request to send
            cancel: Caller's cancellation token
            stream: Leave the final response body unread
            body_factory: Rebuilds a streamed body for each retry

        Returns:
            Final response of any status (the caller classifies it)

        Raises:
            RequestCancelledError: If cancel fires before or between attempts
            NonRetryableBodyError: If a retry needs a body that cannot be replayed
            APIConnectionError: If the last attempt failed in transport
        """
        method = request.method
        replayable = isinstance(request.stream, httpx.ByteStream)

        for attempt in range(self.config.max_retries + 1):
            if cancel is not None:
                cancel.raise_if_cancelled()

            response: Optional[httpx.Response] = None
            error: Optional[APIConnectionError] = None
            try:
                response = self.client.send(request, cancel=cancel, stream=stream)
            except APIConnectionError as e:
                error = e

            retry, retry_after = self.should_retry(method, attempt, response, error)
            if not retry:
                if error is not None:
                    if attempt > 0:
                        self._logger.error(
                            "[Retry] {} {} failed after {} attempts: {}", method, request.url, attempt + 1, error
                        )
                    raise error
                return response

            if response is not None:
                self._drain_and_close(response)

            if not replayable:
                if body_factory is None:
                    raise NonRetryableBodyError() from error
                request = self._rebuild_request(request, body_factory)

            delay = self.calculate_backoff(attempt, retry_after)
            reason = f"status {response.status_code}" if response is not None else str(error)
            self._logger.warning(
                "[Retry] {} {} attempt {}/{} failed ({}), retrying in {:.2f}s",
                method,
                request.url,
                attempt + 1,
                self.config.max_retries + 1,
                reason,
                delay,
            )

            if cancel is not None:
                if cancel.wait(delay):
                    cancel.raise_if_cancelled()
            elif delay > 0:
                time.sleep(delay)

        raise AssertionError("retry loop exited without a result")

    @staticmethod
    def _rebuild_request(request: httpx.Request, body_factory: BodyFactory) -> httpx.Request:
        # Framing headers belong to the old body; httpx sets them for the new one
        headers = request.headers.copy()
        for name in _FRAMING_HEADERS:
            headers.pop(name, None)
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=body_factory(),
            extensions=dict(request.extensions),
        )

    def _drain_and_close(self, response: httpx.Response) -> None:
        """Read a bounded amount of an abandoned body, then close it."""
        try:
            if not response.is_stream_consumed and not response.is_closed:
                drained = 0
                for chunk in response.iter_raw():
                    drained += len(chunk)
                    if drained >= RETRY_DRAIN_LIMIT:
                        break
        except httpx.HTTPError as e:
            self._logger.debug("[Retry] Could not drain discarded response: {}", e)
        finally:
            response.close()

    def close(self) -> None:
        self.client.close()
