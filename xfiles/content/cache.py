"""Module implementing the in-memory cache of commit payloads."""

from typing import Dict, Optional

import fasteners

from xfiles.dag import PostId


class ContentCache:
    """
    Mapping from commit ids to the full payload of that commit.

    Posts are immutable, so a cached payload never becomes stale and entries are never
    evicted. It's up to the writers to keep the cache coherent by storing the complete
    logical payload of a commit under its id, rather than any of its segments.

    The cache is shared by all file handles of a file system and access is guarded by a
    reader-writer lock, which allows concurrent lookups while an insertion has
    exclusive access.
    """

    def __init__(self) -> None:
        """Instantiate an empty cache."""
        self._entries: Dict[PostId, bytes] = {}
        self._lock = fasteners.ReaderWriterLock()

    def get(self, key: PostId) -> Optional[bytes]:
        """Return the cached payload for the commit or None if it's not cached."""
        with self._lock.read_lock():
            return self._entries.get(key)

    def put(self, key: PostId, data: bytes) -> None:
        """Store the payload of a commit."""
        with self._lock.write_lock():
            self._entries[key] = bytes(data)

    def remove(self, key: PostId) -> None:
        """Remove the payload of a commit if it is cached."""
        with self._lock.write_lock():
            self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove all cached payloads."""
        with self._lock.write_lock():
            self._entries.clear()

    def size(self) -> int:
        """Return the number of cached payloads."""
        with self._lock.read_lock():
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        with self._lock.read_lock():
            return key in self._entries
