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
Z.ai SDK configuration.

Centralized storage for all defaults and constants of the transport layer.
Loads environment variables and provides the explicit ClientConfig
structure that every client is built from.
"""

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, FrozenSet, Optional

import httpx
from dotenv import load_dotenv

from zai.errors import ConfigError

# Load environment variables
load_dotenv()

_TRUTHY = ("true", "1", "yes", "enabled", "on")
_FALSY = ("false", "0", "no", "disabled", "off", "")


# ==================================================================================================
# Endpoints
# ==================================================================================================

# International platform
ZAI_BASE_URL: str = "https://api.z.ai/api/paas/v4"

# Mainland China platform
ZHIPU_BASE_URL: str = "https://open.bigmodel.cn/api/paas/v4"

DEFAULT_BASE_URL: str = ZAI_BASE_URL

# Environment variable prefixes read by the regional clients' from_env().
# <PREFIX>_BASE_URL is read when from_env() runs, not at import.
ZAI_ENV_PREFIX: str = "ZAI"
ZHIPUAI_ENV_PREFIX: str = "ZHIPUAI"

# ==================================================================================================
# HTTP Settings
# ==================================================================================================

# Total request timeout in seconds.
# Chat completions on large models can legitimately take minutes.
DEFAULT_TIMEOUT: float = 300.0

# TCP connect timeout in seconds
DEFAULT_CONNECT_TIMEOUT: float = 8.0

# Connection pool limits.
# httpx has no separate per-host cap, the keep-alive limit covers it.
MAX_CONNECTIONS: int = 50
MAX_KEEPALIVE_CONNECTIONS: int = 10
KEEPALIVE_EXPIRY: float = 90.0

# ==================================================================================================
# Retry Settings
# ==================================================================================================

DEFAULT_MAX_RETRIES: int = 3

# Exponential backoff: delay = min(MAX, INITIAL * MULTIPLIER ** attempt)
INITIAL_RETRY_DELAY: float = 0.5
MAX_RETRY_DELAY: float = 8.0
RETRY_BACKOFF_MULTIPLIER: float = 2.0

# Upper bound of random jitter added to each delay, as a fraction of the delay
RETRY_JITTER_RATIO: float = 0.25

RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})

# Only these methods are retried on a retryable status code
IDEMPOTENT_METHODS: FrozenSet[str] = frozenset({"GET", "HEAD", "OPTIONS", "TRACE", "PUT", "DELETE"})

# Server-provided Retry-After is honored up to this many seconds
RETRY_AFTER_MAX_SECONDS: float = 300.0

# Bytes read from a discarded response before closing it
RETRY_DRAIN_LIMIT: int = 64 * 1024

# ==================================================================================================
# Token Settings
# ==================================================================================================

# How long a signed token is served from the cache (seconds)
TOKEN_CACHE_TTL: float = 180.0

# Lifetime written into the token's exp claim (seconds).
# Exceeds the cache TTL so a cached token is never handed out already expired.
API_TOKEN_TTL: float = TOKEN_CACHE_TTL + 30.0

TOKEN_CACHE_MAX_SIZE: int = 10

TOKEN_ALGORITHM: str = "HS256"

# ==================================================================================================
# Streaming Settings
# ==================================================================================================

SSE_MAX_LINE_BYTES: int = 1024 * 1024

# Data payload that marks the end of a stream
SSE_DONE_SENTINEL: str = "[DONE]"

# ==================================================================================================
# Headers
# ==================================================================================================

SOURCE_CHANNEL_HEADER: str = "x-source-channel"
RAW_RESPONSE_HEADER: str = "X-Stainless-Raw-Response"
REQUEST_ID_HEADERS = ("X-Request-ID", "Request-ID")

DEFAULT_SOURCE_CHANNEL: str = "python-sdk"
SOURCE_CHANNEL: str = os.getenv("ZAI_SOURCE_CHANNEL", DEFAULT_SOURCE_CHANNEL)

# ==================================================================================================
# Logging
# ==================================================================================================

# Level used by zai.log.setup_logging() when none is given
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# ==================================================================================================
# Version
# ==================================================================================================

APP_VERSION: str = "0.1.0"
APP_TITLE: str = "zai-sdk-core"
USER_AGENT: str = f"{APP_TITLE}/{APP_VERSION}"


def parse_bool(value: str, field: str) -> bool:
    """Parse a boolean environment value, raising ConfigError on garbage."""
    normalized = value.strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False
    raise ConfigError(field, f"invalid boolean value: {value!r}")


@dataclass
class ClientConfig:
    """
    Explicit configuration of an API client.

    Attributes:
        api_key: Credential in "<id>.<secret>" form
        base_url: API root; None selects the client's regional default
        timeout: Total per-request timeout in seconds
        connect_timeout: TCP connect timeout in seconds
        max_retries: Retries after the first attempt (0 disables retrying)
        disable_token_cache: Send the raw credential instead of a signed token
        source_channel: Value of the x-source-channel header
        http_client: Pre-built httpx.Client to use instead of the internal pool
        logger: loguru-compatible logger; None uses the package logger
    """

    api_key: str = ""
    base_url: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    disable_token_cache: bool = False
    source_channel: str = SOURCE_CHANNEL
    http_client: Optional[httpx.Client] = None
    logger: Optional[Any] = None

    def validate(self) -> None:
        """
        Check the configuration for values no client can work with.

        Raises:
            ConfigError: Naming the first offending field
        """
        if not self.api_key:
            raise ConfigError("api_key", "API key is required")
        if self.base_url is not None and not self.base_url.startswith(("http://", "https://")):
            raise ConfigError("base_url", f"base URL must be absolute: {self.base_url!r}")
        if self.timeout <= 0:
            raise ConfigError("timeout", "timeout must be positive")
        if self.connect_timeout <= 0:
            raise ConfigError("connect_timeout", "connect timeout must be positive")
        if self.max_retries < 0:
            raise ConfigError("max_retries", "max retries must not be negative")

    def clone(self, **overrides: Any) -> "ClientConfig":
        """Return a copy with the given fields replaced."""
        return dataclasses.replace(self, **overrides)

    @classmethod
    def from_env(cls, prefix: str = "ZAI", **overrides: Any) -> "ClientConfig":
        """
        Build a configuration from environment variables.

        Reads <PREFIX>_API_KEY, <PREFIX>_BASE_URL, <PREFIX>_TIMEOUT,
        <PREFIX>_MAX_RETRIES, <PREFIX>_DISABLE_TOKEN_CACHE and
        <PREFIX>_SOURCE_CHANNEL. Keyword overrides win over the environment.

        Raises:
            ConfigError: If the API key is missing or a value cannot be parsed
        """
        values = {"api_key": os.getenv(f"{prefix}_API_KEY", "")}

        base_url = os.getenv(f"{prefix}_BASE_URL")
        if base_url:
            values["base_url"] = base_url

        timeout = os.getenv(f"{prefix}_TIMEOUT")
        if timeout:
            try:
                values["timeout"] = float(timeout)
            except ValueError:
                raise ConfigError("timeout", f"invalid timeout: {timeout!r}") from None

        max_retries = os.getenv(f"{prefix}_MAX_RETRIES")
        if max_retries:
            try:
                values["max_retries"] = int(max_retries)
            except ValueError:
                raise ConfigError("max_retries", f"invalid max retries: {max_retries!r}") from None

        disable_cache = os.getenv(f"{prefix}_DISABLE_TOKEN_CACHE")
        if disable_cache is not None:
            values["disable_token_cache"] = parse_bool(disable_cache, "disable_token_cache")

        source_channel = os.getenv(f"{prefix}_SOURCE_CHANNEL")
        if source_channel:
            values["source_channel"] = source_channel

        values.update(overrides)
        config = cls(**values)
        config.validate()
        return config
