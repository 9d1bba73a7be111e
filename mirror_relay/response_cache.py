"""ResponseCache — TTL store for idempotent responses.

Mechanism only: the dispatcher decides what is cacheable (GET with the
cache enabled).  Entries are immutable; a refresh replaces the entry.
When the store would exceed ``max_size`` it first sweeps expired
entries, then evicts the oldest-created ones.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from mirror_relay.core.clock import Clock, MonotonicClock

logger = logging.getLogger(__name__)

# Request headers that change the representation a server returns.
_VARY_HEADERS: tuple[str, ...] = ("accept", "accept-encoding", "accept-language")

# Headers folded into the key only as a digest, never in clear text.
_DIGEST_HEADERS: tuple[str, ...] = ("authorization",)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    body: bytes
    status: int
    status_text: str
    headers: Mapping[str, str] = field(default_factory=dict)
    expires_at: float = 0.0
    created_at: float = 0.0
    host: str = ""


def build_cache_key(method: str, path: str, headers: Mapping[str, str] | None = None) -> str:
    """Deterministic key from method, path and the representation-relevant headers.

    Header names are matched case-insensitively.  ``Authorization`` is
    reduced to a SHA-256 digest so credentials never sit in the key.
    """
    lowered = {k.lower(): v for k, v in (headers or {}).items()}
    parts = [method.upper(), path]
    for name in _VARY_HEADERS:
        if name in lowered:
            parts.append(f"{name}={lowered[name]}")
    for name in _DIGEST_HEADERS:
        if name in lowered:
            digest = hashlib.sha256(lowered[name].encode()).hexdigest()
            parts.append(f"{name}#{digest[:16]}")
    return "|".join(parts)


class ResponseCache:
    """In-memory TTL cache with bounded size.

    Args:
        max_size: Maximum number of live entries.
        clock:    Time source (``MonotonicClock`` by default).
    """

    def __init__(self, max_size: int = 100, clock: Clock | None = None) -> None:
        self.max_size = max_size
        self._clock = clock or MonotonicClock()
        self._entries: dict[str, CacheEntry] = {}

        # Metrics
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> CacheEntry | None:
        """Return the live entry for *key*; expired entries are evicted."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock.now() >= entry.expires_at:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def put(
        self,
        key: str,
        *,
        body: bytes,
        status: int,
        status_text: str,
        headers: Mapping[str, str],
        ttl: float,
        host: str = "",
    ) -> CacheEntry:
        """Insert or replace the entry for *key*, expiring *ttl* seconds from now."""
        now = self._clock.now()
        entry = CacheEntry(
            key=key,
            body=body,
            status=status,
            status_text=status_text,
            headers=dict(headers),
            expires_at=now + ttl,
            created_at=now,
            host=host,
        )
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._make_room(now)
        # Re-inserting keeps dict order == creation order
        self._entries.pop(key, None)
        self._entries[key] = entry
        return entry

    def _make_room(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        self.evictions += len(expired)

        while len(self._entries) >= self.max_size:
            oldest = min(self._entries.values(), key=lambda e: e.created_at)
            del self._entries[oldest.key]
            self.evictions += 1
            logger.debug("Evicted cache entry %s (capacity %d)", oldest.key, self.max_size)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
