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
Z.ai SDK Core - transport layer for the Z.ai / Zhipu AI platform APIs.

Modules:
    - config: Defaults, environment settings and ClientConfig
    - errors: Exception hierarchy
    - cancel: Cancellation tokens
    - cache: Signed token cache
    - auth: JWT bearer token generation
    - http_client: URL composition, default headers, middleware
    - retry: Retry loop with exponential backoff
    - sse: Server-Sent Events parser
    - streaming: Typed event streams
    - response: Response wrapper
    - client: Regional API clients
    - log: Logging switches
"""

from loguru import logger

# Version is imported from config.py, the single source of truth
from zai.config import APP_VERSION as __version__

# Main components for convenient import
from zai.client import BaseClient, ZaiClient, ZhipuAiClient
from zai.config import ClientConfig, ZAI_BASE_URL, ZHIPU_BASE_URL
from zai.cancel import CancelToken
from zai.response import APIResponse

# Transport
from zai.auth import TokenGenerator, verify_token
from zai.http_client import HttpClient, HttpClientConfig
from zai.retry import RetryableHttpClient, RetryConfig
from zai.sse import SSEEvent, SSEParser
from zai.streaming import RawStream, Stream

# Errors
from zai.errors import (
    ZaiError,
    ConfigError,
    CredentialError,
    EmptyCredentialError,
    InvalidCredentialError,
    TokenSigningError,
    APIStatusError,
    APIRequestFailedError,
    APIAuthenticationError,
    APIReachLimitError,
    APIInternalError,
    APIServerFlowExceedError,
    APIResponseError,
    APIResponseValidationError,
    APIConnectionError,
    APITimeoutError,
    NonRetryableBodyError,
    StreamError,
    StreamClosedError,
    StreamDecodeError,
    SSELineTooLongError,
    RequestCancelledError,
    DeadlineExceededError,
    is_retryable_error,
)

# Logging
from zai.log import setup_logging, disable_logging

# Silent unless the application opts in with setup_logging()
logger.disable("zai")

__all__ = [
    # Version
    "__version__",

    # Clients
    "BaseClient",
    "ZaiClient",
    "ZhipuAiClient",
    "ClientConfig",
    "APIResponse",
    "CancelToken",
    "ZAI_BASE_URL",
    "ZHIPU_BASE_URL",

    # Transport
    "TokenGenerator",
    "verify_token",
    "HttpClient",
    "HttpClientConfig",
    "RetryableHttpClient",
    "RetryConfig",
    "SSEEvent",
    "SSEParser",
    "Stream",
    "RawStream",

    # Errors
    "ZaiError",
    "ConfigError",
    "CredentialError",
    "EmptyCredentialError",
    "InvalidCredentialError",
    "TokenSigningError",
    "APIStatusError",
    "APIRequestFailedError",
    "APIAuthenticationError",
    "APIReachLimitError",
    "APIInternalError",
    "APIServerFlowExceedError",
    "APIResponseError",
    "APIResponseValidationError",
    "APIConnectionError",
    "APITimeoutError",
    "NonRetryableBodyError",
    "StreamError",
    "StreamClosedError",
    "StreamDecodeError",
    "SSELineTooLongError",
    "RequestCancelledError",
    "DeadlineExceededError",
    "is_retryable_error",

    # Logging
    "setup_logging",
    "disable_logging",
]
