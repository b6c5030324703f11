"""Bounded, time-evicting cache of accepted artifacts keyed by content hash."""

from __future__ import annotations

import hashlib
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from .base import NormalizedArtifact

LOG = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached artifact with its insertion time."""

    artifact: NormalizedArtifact
    stored_at: float


class ArtifactCache:
    """LRU cache with a time-to-live, injected into the normalizer."""

    def __init__(
        self,
        max_entries: int = 256,
        ttl_seconds: float = 3600.0,
        chunk_size: int = 1024 * 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the cache.

        Args:
            max_entries: Maximum number of artifacts kept before the oldest is evicted
            ttl_seconds: Age after which an entry is considered stale
            chunk_size: Size of chunks to read when hashing a source
            clock: Time source, replaceable in tests

        """
        if max_entries < 1:
            msg = "max_entries must be at least 1"
            raise ValueError(msg)
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self.chunk_size = chunk_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def content_hash(self, file_path: Path) -> str:
        """Calculate SHA-256 hash of a file."""
        hash_obj = hashlib.sha256()
        with file_path.open("rb") as f:
            while chunk := f.read(self.chunk_size):
                hash_obj.update(chunk)
        return hash_obj.hexdigest()

    def get(self, key: str) -> NormalizedArtifact | None:
        """Return a live artifact for a content hash, dropping stale entries."""
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() - entry.stored_at > self.ttl_seconds:
            LOG.debug("Cache entry %s expired", key[:12])
            del self._entries[key]
            return None

        if not entry.artifact.path.is_file():
            LOG.debug("Cached artifact %s no longer exists", entry.artifact.path)
            del self._entries[key]
            return None

        self._entries.move_to_end(key)
        return entry.artifact

    def put(self, key: str, artifact: NormalizedArtifact) -> None:
        """Store an artifact, evicting the least recently used entries beyond the bound."""
        self._entries[key] = CacheEntry(artifact=artifact, stored_at=self._clock())
        self._entries.move_to_end(key)
        self.evict_expired()
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            LOG.debug("Evicted cache entry %s", evicted[:12])

    def evict_expired(self) -> int:
        """Drop every entry older than the TTL."""
        now = self._clock()
        stale = [key for key, entry in self._entries.items() if now - entry.stored_at > self.ttl_seconds]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
