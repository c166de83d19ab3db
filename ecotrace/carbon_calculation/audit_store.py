# -*- coding: utf-8 -*-
"""
Audit Store - EcoTrace Carbon Calculation Pipeline

Keyed persistence behind the audit ledger. Entries are stored under
``audit_<id>`` and ``methodology_<version>`` keys with a per-entry TTL
that is independent of the ledger's own retention sweep.

``AuditStore`` is the async contract a long-term document store would
implement; ``InMemoryTTLStore`` is the bundled implementation, an LRU
map with TTL expiry and hit/miss statistics.

Example:
    >>> store = InMemoryTTLStore(max_entries=1000, ttl_seconds=3600)
    >>> await store.set("audit_42", {"carbon_kg": 0.4})
    >>> await store.get("audit_42")
    {'carbon_kg': 0.4}

Author: EcoTrace Platform Team
Date: October 2026
Status: Production Ready
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

AUDIT_KEY_PREFIX = "audit_"
METHODOLOGY_KEY_PREFIX = "methodology_"


def audit_key(audit_id: str) -> str:
    return f"{AUDIT_KEY_PREFIX}{audit_id}"


def methodology_key(version: str) -> str:
    return f"{METHODOLOGY_KEY_PREFIX}{version}"


class AuditStore(ABC):
    """Async keyed store used by the audit ledger.

    Implementations raise ``LedgerError`` on persistence failures; the
    ledger absorbs them.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value for ``key`` or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it existed."""

    @abstractmethod
    async def keys(self, prefix: str = "") -> List[str]:
        """List live keys starting with ``prefix``."""


class _StoreEntry:
    """A stored value with its expiry time."""

    __slots__ = ("value", "expires_at")

    def __init__(self, value: Any, expires_at: float) -> None:
        self.value = value
        self.expires_at = expires_at

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryTTLStore(AuditStore):
    """LRU map with per-entry TTL.

    Reads move an entry to the most-recently-used end; writes beyond
    ``max_entries`` evict from the least-recently-used end.
    """

    def __init__(
        self,
        max_entries: int = 200000,
        ttl_seconds: int = 7 * 24 * 3600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, _StoreEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._expirations += 1
            self._misses += 1
            return None
        self._entries.move_to_end(key)
        self._hits += 1
        return entry.value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = _StoreEntry(value, self._clock() + ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("Evicted %s from audit store (capacity %d)", evicted, self.max_entries)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> List[str]:
        now = self._clock()
        return [
            key for key, entry in self._entries.items()
            if key.startswith(prefix) and not entry.is_expired(now)
        ]

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Hit/miss statistics."""
        lookups = self._hits + self._misses
        return {
            "size": len(self._entries),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
            "evictions": self._evictions,
            "expirations": self._expirations,
        }


__all__ = [
    "AuditStore",
    "InMemoryTTLStore",
    "audit_key",
    "methodology_key",
]
