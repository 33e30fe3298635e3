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
Signed token cache for the Z.ai SDK.

Thread-safe, size-bounded storage for bearer tokens keyed by the full
credential, with TTL-based freshness and oldest-first eviction.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from loguru import logger

from zai.config import TOKEN_CACHE_MAX_SIZE, TOKEN_CACHE_TTL


@dataclass
class CachedToken:
    """
    A cached bearer token.

    Attributes:
        token: Signed JWT
        created_at: Creation time on the cache's clock (seconds)
    """

    token: str
    created_at: float


class TokenCache:
    """
    Thread-safe cache of signed tokens.

    Entries older than cache_ttl are never returned; they are skipped on
    read and removed by clear_expired(). Inserting a new key into a full
    cache evicts the entry with the oldest creation time.

    Attributes:
        cache_ttl: Freshness window in seconds
        max_size: Maximum number of entries

    Example:
        >>> cache = TokenCache(max_size=2)
        >>> cache.put("id.secret", "eyJ...")
        >>> cache.get("id.secret")
        'eyJ...'
    """

    def __init__(
        self,
        cache_ttl: float = TOKEN_CACHE_TTL,
        max_size: int = TOKEN_CACHE_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initializes the token cache.

        Args:
            cache_ttl: Freshness window in seconds (default from config)
            max_size: Maximum number of entries, at least 1
            clock: Monotonic time source, replaceable in tests
        """
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: Dict[str, CachedToken] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self.cache_ttl = cache_ttl
        self.max_size = max_size

    def _is_fresh(self, entry: CachedToken, now: float) -> bool:
        return now - entry.created_at <= self.cache_ttl

    def get(self, key: str) -> Optional[str]:
        """
        Returns the cached token for key if it is still fresh.

        Args:
            key: Full credential

        Returns:
            Token string or None on a miss or a stale entry
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_fresh(entry, self._clock()):
                return None
            return entry.token

    def put(self, key: str, token: str) -> None:
        """
        Stores a token, evicting the oldest entry if a new key would overflow.

        Args:
            key: Full credential
            token: Signed token
        """
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest_key = min(self._entries, key=lambda k: self._entries[k].created_at)
                del self._entries[oldest_key]
                logger.debug("[TokenCache] Evicted oldest entry, cache full ({} entries)", self.max_size)
            self._entries[key] = CachedToken(token=token, created_at=now)

    def clear(self) -> None:
        """Removes every entry."""
        with self._lock:
            self._entries.clear()

    def clear_expired(self) -> int:
        """
        Removes stale entries.

        Returns:
            Number of removed entries
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if not self._is_fresh(entry, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("[TokenCache] Removed {} expired tokens", len(expired))
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        """Snapshot of cache occupancy for diagnostics."""
        with self._lock:
            now = self._clock()
            ages = [now - entry.created_at for entry in self._entries.values()]
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "expired": sum(1 for age in ages if age > self.cache_ttl),
                "oldest_age": max(ages) if ages else None,
            }

    @property
    def size(self) -> int:
        """Number of entries, stale ones included."""
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size
