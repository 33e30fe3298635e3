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
Bearer token generation for the Z.ai API.

An API key has the form "<id>.<secret>". The API accepts an HS256 JWT signed
with the secret whose claims carry the id, the issue time and the expiry,
both in milliseconds. Tokens are cached per key so a busy client signs at
most once per cache window.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

import jwt
from loguru import logger

from zai.cache import TokenCache
from zai.config import API_TOKEN_TTL, TOKEN_ALGORITHM, TOKEN_CACHE_MAX_SIZE, TOKEN_CACHE_TTL
from zai.errors import EmptyCredentialError, InvalidCredentialError, TokenSigningError

_default_logger = logger


def split_api_key(api_key: str) -> Tuple[str, str]:
    """
    Split a credential into its id and secret.

    Args:
        api_key: Credential in "<id>.<secret>" form

    Returns:
        Tuple (id, secret)

    Raises:
        EmptyCredentialError: If api_key is empty
        InvalidCredentialError: Unless there are exactly two non-empty parts
    """
    if not api_key:
        raise EmptyCredentialError()
    parts = api_key.split(".")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidCredentialError()
    return parts[0], parts[1]


def verify_token(token: str, secret: str) -> Dict[str, Any]:
    """
    Verify a token's signature and return its claims.

    Args:
        token: JWT produced by TokenGenerator
        secret: Secret half of the credential

    Returns:
        Claims dictionary (api_key, timestamp, exp)

    Raises:
        jwt.InvalidTokenError: On a bad signature or malformed token
    """
    # exp is in milliseconds, so PyJWT's seconds-based expiry check would never fire
    return jwt.decode(token, secret, algorithms=[TOKEN_ALGORITHM], options={"verify_exp": False})


class TokenGenerator:
    """
    Turns credentials into signed bearer tokens, with a bounded cache.

    Safe for concurrent use. Concurrent callers with the same credential may
    each sign a token, but the cache ends up with a single entry for it.

    Attributes:
        token_ttl: Lifetime written into the exp claim (seconds)

    Example:
        >>> generator = TokenGenerator()
        >>> token = generator.generate_token("my-id.my-secret")
        >>> verify_token(token, "my-secret")["api_key"]
        'my-id'
    """

    def __init__(
        self,
        cache_ttl: float = TOKEN_CACHE_TTL,
        token_ttl: float = API_TOKEN_TTL,
        max_cache_size: int = TOKEN_CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        logger: Optional[Any] = None,
    ):
        """
        Initializes the generator.

        Args:
            cache_ttl: How long a token is served from the cache
            token_ttl: Token lifetime, should exceed cache_ttl
            max_cache_size: Maximum cached credentials
            clock: Monotonic clock for cache freshness
            wall_clock: Unix time source for the claims
            logger: loguru-compatible logger
        """
        self._cache = TokenCache(cache_ttl=cache_ttl, max_size=max_cache_size, clock=clock)
        self._wall_clock = wall_clock
        self._cache_enabled = True
        self._logger = logger or _default_logger
        self.token_ttl = token_ttl

    def generate_token(self, api_key: str) -> str:
        """
        Return a bearer token for the credential.

        Args:
            api_key: Credential in "<id>.<secret>" form

        Returns:
            Signed JWT, from the cache when a fresh one exists

        Raises:
            EmptyCredentialError: If api_key is empty
            InvalidCredentialError: If api_key is malformed
            TokenSigningError: If signing fails
        """
        key_id, secret = split_api_key(api_key)

        if self._cache_enabled:
            cached = self._cache.get(api_key)
            if cached is not None:
                return cached

        token = self._sign(key_id, secret)

        if self._cache_enabled:
            self._cache.put(api_key, token)
        return token

    def _sign(self, key_id: str, secret: str) -> str:
        now_ms = int(self._wall_clock() * 1000)
        payload = {
            "api_key": key_id,
            "timestamp": now_ms,
            "exp": now_ms + int(self.token_ttl * 1000),
        }
        try:
            token = jwt.encode(
                payload,
                secret,
                algorithm=TOKEN_ALGORITHM,
                headers={"sign_type": "SIGN"},
            )
        except jwt.PyJWTError as e:
            raise TokenSigningError(f"failed to sign token: {e}") from e

        self._logger.debug("[Auth] Signed new token for key id {}", key_id)
        return token

    def disable_cache(self) -> None:
        """Stop using the cache; every call signs a fresh token."""
        self._cache_enabled = False

    def enable_cache(self) -> None:
        self._cache_enabled = True

    def clear_cache(self) -> None:
        self._cache.clear()

    def clear_expired_tokens(self) -> int:
        """Drop stale cache entries, returning how many were removed."""
        return self._cache.clear_expired()

    @property
    def cache_enabled(self) -> bool:
        return self._cache_enabled

    @property
    def cache_size(self) -> int:
        return self._cache.size

    @property
    def cache(self) -> TokenCache:
        return self._cache

