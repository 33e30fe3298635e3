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
Error taxonomy of the Z.ai SDK.

Every error raised by the SDK derives from ZaiError. Transport and retry
layers never classify HTTP status codes; the base client turns a non-2xx
response into the matching APIStatusError subclass via make_status_error().

Architecture:
- ZaiError: root of the hierarchy
- APIStatusError and subclasses: non-2xx responses (400, 401, 429, 500, 503)
- APIConnectionError / APITimeoutError: transport failures
- CredentialError family: bad credentials or signing failures
- StreamError family: problems while consuming an event stream
- RequestCancelledError / DeadlineExceededError: caller cancellation

Example:
    >>> info = extract_error_info({"error": {"message": "Invalid model", "code": "1211"}})
    >>> info.message
    'Invalid model'
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx


class ZaiError(Exception):
    """Base class for all SDK errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# ==================================================================================================
# Configuration and credentials
# ==================================================================================================


class ConfigError(ZaiError):
    """Invalid or missing configuration value."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def __str__(self) -> str:
        if self.field:
            return f"configuration error for field '{self.field}': {self.message}"
        return f"configuration error: {self.message}"


class CredentialError(ZaiError):
    """The credential could not be turned into a bearer token."""


class EmptyCredentialError(CredentialError):
    def __init__(self, message: str = "API key is empty"):
        super().__init__(message)


class InvalidCredentialError(CredentialError):
    def __init__(self, message: str = "invalid API key format, expected '<id>.<secret>'"):
        super().__init__(message)


class TokenSigningError(CredentialError):
    """Signing a token failed. Not retryable."""


# ==================================================================================================
# HTTP status errors
# ==================================================================================================


class APIStatusError(ZaiError):
    """
    The server answered with a non-2xx status.

    Attributes:
        status_code: HTTP status of the response
        response: The (closed) httpx response
        request_id: Value of X-Request-ID / Request-ID, empty when absent
        code: Business error code from the body, empty when absent
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        response: Optional[httpx.Response] = None,
        request_id: str = "",
        code: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response
        self.request_id = request_id
        self.code = code

    def __str__(self) -> str:
        if self.request_id:
            return f"API error (status {self.status_code}, request_id: {self.request_id}): {self.message}"
        return f"API error (status {self.status_code}): {self.message}"


class APIRequestFailedError(APIStatusError):
    """400 Bad Request."""


class APIAuthenticationError(APIStatusError):
    """401 Unauthorized."""


class APIReachLimitError(APIStatusError):
    """
    429 Too Many Requests.

    retry_after carries the server's Retry-After hint in seconds, if any.
    """

    def __init__(self, *args: Any, retry_after: Optional[float] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.retry_after = retry_after


class APIInternalError(APIStatusError):
    """500 Internal Server Error."""


class APIServerFlowExceedError(APIStatusError):
    """503 Service Unavailable (server overloaded)."""


# ==================================================================================================
# Response and transport errors
# ==================================================================================================


class APIResponseError(ZaiError):
    """The response could not be interpreted."""

    def __init__(self, message: str, request: Optional[httpx.Request] = None, json_data: Any = None):
        super().__init__(message)
        self.request = request
        self.json_data = json_data

    def __str__(self) -> str:
        if self.request is not None:
            return f"API response error for {self.request.method} {self.request.url.path}: {self.message}"
        return f"API response error: {self.message}"


class APIResponseValidationError(APIResponseError):
    """A 2xx body that does not match the expected schema."""

    def __init__(self, message: str, response: Optional[httpx.Response] = None, json_data: Any = None):
        super().__init__(message, json_data=json_data)
        self.response = response
        self.status_code = response.status_code if response is not None else 0

    def __str__(self) -> str:
        return f"API response validation error (status {self.status_code}): {self.message}"


class APIConnectionError(ZaiError):
    """The request never produced a response (DNS, TCP, TLS, reset)."""

    def __init__(self, message: str = "connection error", request: Optional[httpx.Request] = None):
        super().__init__(message)
        self.request = request


class APITimeoutError(APIConnectionError):
    def __init__(self, request: Optional[httpx.Request] = None):
        super().__init__("request timed out", request=request)


class NonRetryableBodyError(ZaiError):
    """A retry needs to resend a body that can only be read once."""

    def __init__(self, message: str = "request body cannot be retried"):
        super().__init__(message)


# ==================================================================================================
# Streaming errors
# ==================================================================================================


class StreamError(ZaiError):
    """Base class for event stream failures."""


class StreamClosedError(StreamError):
    def __init__(self, message: str = "stream is closed"):
        super().__init__(message)


class StreamDecodeError(StreamError):
    """An event's data payload could not be decoded into the record type."""

    def __init__(self, message: str, data: str = ""):
        super().__init__(message)
        self.data = data


class SSELineTooLongError(StreamError):
    def __init__(self, limit: int):
        super().__init__(f"SSE line exceeds {limit} bytes")
        self.limit = limit


# ==================================================================================================
# Cancellation
# ==================================================================================================


class RequestCancelledError(ZaiError):
    def __init__(self, message: str = "request cancelled"):
        super().__init__(message)


class DeadlineExceededError(RequestCancelledError):
    def __init__(self, message: str = "deadline exceeded"):
        super().__init__(message)


# ==================================================================================================
# Classification helpers
# ==================================================================================================


@dataclass
class APIErrorInfo:
    """
    Message and business code extracted from an error body.

    Attributes:
        message: Human readable message ("Unknown error" when the body has none)
        code: Business error code, empty when absent
    """

    message: str
    code: str = ""


def extract_error_info(error_json: Any) -> APIErrorInfo:
    """
    Extract message and code from an API error body.

    Accepts both the flat shape {"message": ..., "code": ...} and the nested
    {"error": {"message": ..., "code": ...}} shape. Top-level fields win.

    Args:
        error_json: Parsed JSON body of an error response

    Returns:
        APIErrorInfo with message and code
    """
    if not isinstance(error_json, dict):
        return APIErrorInfo(message="Unknown error")

    nested: Dict[str, Any] = error_json.get("error") if isinstance(error_json.get("error"), dict) else {}

    message = error_json.get("message") or nested.get("message") or "Unknown error"
    code = error_json.get("code") or nested.get("code") or ""
    return APIErrorInfo(message=str(message), code=str(code))


_STATUS_ERRORS = {
    400: APIRequestFailedError,
    401: APIAuthenticationError,
    429: APIReachLimitError,
    500: APIInternalError,
    503: APIServerFlowExceedError,
}


def make_status_error(
    status_code: int,
    message: str,
    response: Optional[httpx.Response] = None,
    request_id: str = "",
    code: str = "",
    retry_after: Optional[float] = None,
) -> APIStatusError:
    """
    Build the APIStatusError subclass matching a status code.

    Unknown codes produce a plain APIStatusError.
    """
    error_class = _STATUS_ERRORS.get(status_code, APIStatusError)
    if error_class is APIReachLimitError:
        return APIReachLimitError(
            message, status_code, response, request_id=request_id, code=code, retry_after=retry_after
        )
    return error_class(message, status_code, response, request_id=request_id, code=code)


def is_retryable_error(error: BaseException) -> bool:
    """True for errors that a later identical request may not hit."""
    if isinstance(error, (APIConnectionError, APIReachLimitError, APIInternalError, APIServerFlowExceedError)):
        return True
    return isinstance(error, APIStatusError) and error.status_code in (502, 504)
