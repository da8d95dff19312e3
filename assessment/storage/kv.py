"""
Key-value storage for session and diagnostic payloads.

The engine only needs five operations on string keys and string values,
with an optional time-to-live per key. Anything that provides them
(Redis, a database table) can be plugged in through the KeyValueStore
protocol; InMemoryKeyValueStore is the default for a single process and
for tests.

Usage:
    from assessment.storage.kv import InMemoryKeyValueStore

    kv = InMemoryKeyValueStore()
    kv.set("session:abc", payload, ttl_seconds=7200)
    kv.get("session:abc")
"""

from __future__ import annotations

import fnmatch
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal storage contract used by the session store."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    def delete(self, key: str) -> bool:
        ...

    def expire(self, key: str, ttl_seconds: int) -> bool:
        ...

    def keys(self, pattern: str = "*") -> list[str]:
        ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

@dataclass
class _Entry:
    value: str
    expires_at: Optional[float] = None     # clock() value, None = no expiry

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class InMemoryKeyValueStore:
    """
    Dict-backed store with per-key TTL.

    Expired keys are evicted lazily on access. A lock guards every
    operation so the store can be shared by the API's worker threads.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.keys())

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._data[key]
            logger.debug("kv_key_expired", extra={"key": key})
            return None
        return entry

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._live(key)
            return entry.value if entry else None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        with self._lock:
            expires_at = self._clock() + ttl_seconds if ttl_seconds else None
            self._data[key] = _Entry(value=value, expires_at=expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def expire(self, key: str, ttl_seconds: int) -> bool:
        """Reset the TTL of an existing key. False if the key is gone."""
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return False
            entry.expires_at = self._clock() + ttl_seconds
            return True

    def keys(self, pattern: str = "*") -> list[str]:
        """Live keys matching a glob pattern, sorted."""
        with self._lock:
            now = self._clock()
            for key in [k for k, e in self._data.items() if e.is_expired(now)]:
                del self._data[key]
            return sorted(k for k in self._data if fnmatch.fnmatchcase(k, pattern))

    def clear(self) -> None:
        with self._lock:
            self._data.clear()
