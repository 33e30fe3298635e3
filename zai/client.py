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
API clients for the Z.ai and Zhipu AI platforms.

BaseClient wires the transport pieces together:
- TokenGenerator signs the bearer token (attached on every attempt)
- HttpClient composes and sends requests
- RetryableHttpClient retries transient failures
- Stream / RawStream decode event streams

and turns non-2xx responses into the matching APIStatusError.

Example:
    >>> client = ZaiClient(api_key="my-id.my-secret")
    >>> response = client.get("/models")
    >>> models = client.parse_json(response)
"""

import json
import time
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

import httpx
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from zai.auth import TokenGenerator, split_api_key
from zai.cancel import CancelToken
from zai.config import (
    RAW_RESPONSE_HEADER,
    ZAI_BASE_URL,
    ZAI_ENV_PREFIX,
    ZHIPU_BASE_URL,
    ZHIPUAI_ENV_PREFIX,
    ClientConfig,
)
from zai.errors import APIResponseValidationError, APIStatusError, extract_error_info, make_status_error
from zai.http_client import HttpClient, HttpClientConfig
from zai.response import APIResponse, get_request_id
from zai.retry import BodyFactory, RetryableHttpClient, RetryConfig, parse_retry_after
from zai.streaming import Decoder, RawStream, Stream

_default_logger = logger

T = TypeVar("T")


class BaseClient:
    """
    Shared implementation of the regional clients.

    Safe for concurrent use by multiple threads.
    """

    default_base_url: str = ZAI_BASE_URL
    env_prefix: str = ZAI_ENV_PREFIX

    def __init__(self, config: Optional[ClientConfig] = None, **options: Any):
        """
        Initializes the client.

        Args:
            config: Explicit configuration
            **options: ClientConfig fields overriding config (api_key=..., max_retries=...)

        Raises:
            ConfigError: If the configuration is invalid
            CredentialError: If the API key is malformed
        """
        config = config or ClientConfig()
        if options:
            config = config.clone(**options)
        if config.base_url is None:
            config = config.clone(base_url=self.default_base_url)
        config.validate()
        if not config.disable_token_cache:
            split_api_key(config.api_key)

        self.config = config
        self._logger = config.logger or _default_logger
        self.token_generator = TokenGenerator(logger=self._logger)

        self.http_client = HttpClient(
            HttpClientConfig(
                base_url=config.base_url,
                timeout=config.timeout,
                connect_timeout=config.connect_timeout,
                source_channel=config.source_channel,
            ),
            http_client=config.http_client,
            logger=self._logger,
        )
        self.http_client.add_request_middleware(self._add_auth)

        self.retrying_client = RetryableHttpClient(
            self.http_client,
            RetryConfig(max_retries=config.max_retries),
            logger=self._logger,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> "BaseClient":
        """
        Build a client from environment variables.

        ZaiClient reads ZAI_*, ZhipuAiClient reads ZHIPUAI_* (see ClientConfig.from_env).
        """
        return cls(ClientConfig.from_env(prefix=cls.env_prefix, **overrides))

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def request(
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
        cancel: Optional[CancelToken] = None,
        raw_response: bool = False,
        body_factory: Optional[BodyFactory] = None,
    ) -> APIResponse:
        """
        Send a request with retries and return the successful response.

        Args:
            method: HTTP method
            path: Path relative to the base URL, or an absolute URL
            json: JSON body
            content: Raw body (bytes or an iterator of bytes)
            data: Form fields
            files: Multipart files
            params: Query parameters
            headers: Extra headers
            cancel: Cancellation token
            raw_response: Ask the server for the unprocessed response
            body_factory: Rebuilds a streamed content body for retries

        Returns:
            APIResponse with a fully read body

        Raises:
            APIStatusError: On a non-2xx response (subclass by status)
            APIConnectionError: If every attempt failed in transport
            RequestCancelledError: If cancel fired
        """
        request = self._build_request(
            method,
            path,
            json=json,
            content=content,
            data=data,
            files=files,
            params=params,
            headers=headers,
            raw_response=raw_response,
        )
        started = time.monotonic()
        http_response = self.retrying_client.send_with_retry(request, cancel=cancel, body_factory=body_factory)
        response = APIResponse(http_response, time.monotonic() - started)
        if not response.is_success():
            raise self._status_error(response)
        return response

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> APIResponse:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, json: Any = None, **kwargs: Any) -> APIResponse:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Any = None, **kwargs: Any) -> APIResponse:
        return self.request("PUT", path, json=json, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> APIResponse:
        return self.request("DELETE", path, **kwargs)

    def post_multipart(
        self,
        path: str,
        files: Any,
        data: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> APIResponse:
        """
        POST a multipart/form-data body.

        Args:
            path: API path
            files: httpx files mapping, e.g. {"file": ("a.jsonl", fh, "application/jsonl")}
            data: Plain form fields
        """
        return self.request("POST", path, files=files, data=data, **kwargs)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def stream(
        self,
        path: str,
        body: Any = None,
        *,
        record_type: Optional[Type[T]] = None,
        decoder: Optional[Decoder] = None,
        method: str = "POST",
        headers: Optional[Mapping[str, str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> Stream[T]:
        """
        Open an event stream and return a typed cursor over it.

        Args:
            path: API path
            body: JSON request body
            record_type: Type each event's data is decoded into
            decoder: Custom decoder, replaces JSON decoding
            method: HTTP method
            headers: Extra headers
            cancel: Token that ends both the request and the stream

        Returns:
            Stream owning the response body

        Raises:
            APIStatusError: On a non-2xx response (the body is closed)
        """
        http_response = self._open_stream(method, path, body, headers, cancel)
        return Stream(http_response, record_type=record_type, decoder=decoder, cancel=cancel, logger=self._logger)

    def raw_stream(
        self,
        path: str,
        body: Any = None,
        *,
        method: str = "POST",
        headers: Optional[Mapping[str, str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> RawStream:
        """Like stream(), but yields undecoded SSEEvent objects."""
        http_response = self._open_stream(method, path, body, headers, cancel)
        return RawStream(http_response, cancel=cancel, logger=self._logger)

    def _open_stream(
        self,
        method: str,
        path: str,
        body: Any,
        headers: Optional[Mapping[str, str]],
        cancel: Optional[CancelToken],
    ) -> httpx.Response:
        stream_headers: Dict[str, str] = {"Accept": "text/event-stream"}
        if headers:
            stream_headers.update(headers)
        request = self._build_request(method, path, json=body, headers=stream_headers)

        started = time.monotonic()
        http_response = self.retrying_client.send_with_retry(request, cancel=cancel, stream=True)
        if not 200 <= http_response.status_code < 300:
            raise self._status_error(APIResponse(http_response, time.monotonic() - started))
        return http_response

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def parse_json(self, response: APIResponse, model: Optional[Any] = None) -> Any:
        """
        Decode a response body, optionally validating it against model.

        Args:
            response: Successful response
            model: Anything pydantic can validate (model, dataclass, List[...])

        Returns:
            Parsed JSON, or an instance of model

        Raises:
            APIResponseValidationError: If the body is not JSON or fails validation
        """
        try:
            data = response.json()
        except ValueError as e:
            raise APIResponseValidationError(
                f"response body is not valid JSON: {e}", response=response.http_response
            ) from e

        if model is None:
            return data
        try:
            return TypeAdapter(model).validate_python(data)
        except ValidationError as e:
            raise APIResponseValidationError(str(e), response=response.http_response, json_data=data) from e

    def _build_request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        raw_response: bool = False,
        files: Any = None,
        **kwargs: Any,
    ) -> httpx.Request:
        request_headers: Dict[str, str] = dict(headers or {})
        if raw_response:
            request_headers[RAW_RESPONSE_HEADER] = "true"
        request = self.http_client.build_request(method, path, headers=request_headers, files=files, **kwargs)
        if files is not None:
            # Buffer multipart bodies so they can be replayed on retry
            request.read()
        return request

    def _add_auth(self, request: httpx.Request) -> None:
        if self.config.disable_token_cache:
            token = self.config.api_key
        else:
            token = self.token_generator.generate_token(self.config.api_key)
        request.headers["Authorization"] = f"Bearer {token}"

    def _status_error(self, response: APIResponse) -> APIStatusError:
        """Read an error response, close it, and classify it."""
        status_code = response.status_code
        code = ""
        try:
            body = response.read()
        except httpx.HTTPError as e:
            self._logger.warning("[Client] Failed to read error response: {}", e)
            message = f"HTTP {status_code}: failed to read error response"
        else:
            try:
                info = extract_error_info(json.loads(body))
                message, code = info.message, info.code
            except ValueError:
                message = f"HTTP {status_code}: {body.decode('utf-8', errors='replace')}"

        retry_after = parse_retry_after(response.headers) if status_code == 429 else None
        request_id = get_request_id(response.headers)
        self._logger.warning(
            "[Client] {} {} failed with status {}: {}", response.method, response.url, status_code, message
        )
        return make_status_error(
            status_code,
            message,
            response.http_response,
            request_id=request_id,
            code=code,
            retry_after=retry_after,
        )

    def close(self) -> None:
        """Release pooled connections."""
        self.http_client.close()

    def __enter__(self) -> "BaseClient":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class ZaiClient(BaseClient):
    """Client for the international platform (api.z.ai)."""

    default_base_url = ZAI_BASE_URL
    env_prefix = ZAI_ENV_PREFIX


class ZhipuAiClient(BaseClient):
    """Client for the mainland China platform (open.bigmodel.cn)."""

    default_base_url = ZHIPU_BASE_URL
    env_prefix = ZHIPUAI_ENV_PREFIX
