"""Module implementing handles to opened files."""

from __future__ import annotations

import asyncio
from typing import Optional, TYPE_CHECKING

import xfiles.constants as constants
from xfiles.dag import Commit, ContentRef, PostId
from xfiles.errors import ConcurrentModification, ReadOnlyFile
from xfiles.filesystem.merge import LastWriterWins, MergeStrategy
from xfiles.logger import log

if TYPE_CHECKING:
    from xfiles.filesystem.filesystem import FileSystem


class FileHandle:
    """
    Handle to an opened file that tracks the head of the file.

    Writes through a handle are strictly sequential: every write replies to the commit
    produced by the previous one. Before posting, the handle checks if the head it
    expects is still the head recorded in the index. If another handle has written to
    the file in the meanwhile, the pending write is reconciled with that version using
    the merge strategy and then posted on top of it instead.
    """

    def __init__(
        self,
        fs: FileSystem,
        path: str,
        root: PostId,
        commit: Commit,
        writable: bool = True,
        merge_strategy: Optional[MergeStrategy] = None,
    ) -> None:
        """Instantiate a handle positioned at the given commit."""
        self._fs = fs
        self._commit = commit
        self._lock = asyncio.Lock()

        self.path = path
        self.root = root
        self.writable = writable
        self.merge_strategy = merge_strategy or LastWriterWins()

    def __repr__(self) -> str:
        return f"FileHandle({self.path!r}, head={self.head!r})"

    @property
    def head(self) -> PostId:
        """Return the id of the commit the handle is positioned at."""
        return self._commit.id

    @property
    def commit(self) -> Commit:
        """Return the commit the handle is positioned at."""
        return self._commit

    @property
    def deleted(self) -> bool:
        """Return whether the file was deleted as of the head of the handle."""
        return self._commit.is_tombstone

    async def read(self) -> bytes:
        """Read the contents of the file as of the head of the handle."""
        return await self._fs._load_content(self._commit)

    async def write(
        self, data: bytes, mime: str = constants.DEFAULT_MIME
    ) -> ContentRef:
        """Write a new version of the file and advance the head to it."""
        self._check_writable()

        async with self._lock:
            try:
                return await self._write(data, mime)
            except ConcurrentModification as e:
                log.warning(f"concurrent write to {self.path}: {e}")

                merged = await self._merge(e.actual, data)

                # Only retry once, another conflict is reported to the caller
                return await self._write(merged, mime)

    async def delete(self) -> None:
        """Mark the file as deleted by appending a tombstone commit."""
        self._check_writable()

        async with self._lock:
            durable_head = await self._fs._durable_head(self.root)

            if durable_head.id != self.head:
                log.warning(
                    f"deleting {self.path} at {durable_head.id}, not {self.head}"
                )

            self._commit = await self._fs._append_tombstone(durable_head.id)

    async def refresh(self) -> None:
        """Move the head of the handle to the current head of the file."""
        async with self._lock:
            self._commit = await self._fs._resolve_head(self.root)

    async def _write(self, data: bytes, mime: str) -> ContentRef:
        """Post data on top of the head after checking that it is still the head."""
        durable_head = await self._fs._durable_head(self.root)

        if durable_head.id != self.head:
            raise ConcurrentModification(self.head, durable_head.id)

        self._commit, ref = await self._fs._append(self.head, data, mime)

        return ref

    async def _merge(self, actual: PostId, data: bytes) -> bytes:
        """Reconcile pending data with the version that was written concurrently."""
        base = await self._fs._load_content(self._commit)

        self._commit = await self._fs._get_commit(actual)
        left = await self._fs._load_content(self._commit)

        return self.merge_strategy.merge(base, left, data)

    def _check_writable(self) -> None:
        if not self.writable:
            raise ReadOnlyFile(self.path)
