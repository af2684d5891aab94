"""Module implementing the file system on top of the remote host and the index."""

from __future__ import annotations

import collections
from enum import auto, Enum
from typing import Any, Deque, List, Optional, Set, Tuple

from xfiles.config import Config
import xfiles.constants as constants
from xfiles.content import Chunker, ContentCache, digest, verify
import xfiles.content.codec as codec
from xfiles.dag import Commit, CommitGraph, ContentRef, PostId
from xfiles.errors import (
    AlreadyExists,
    CommitNotFound,
    FileNotFound,
    HashMismatch,
    InvalidEncoding,
    InvalidPath,
    XFilesError,
)
from xfiles.filesystem.file import FileHandle
from xfiles.filesystem.merge import MergeStrategy
from xfiles.index import CommitIndex
from xfiles.logger import log
from xfiles.remote import RemoteAdapter


class OpenMode(Enum):
    """How a file is opened."""

    # Create a new file, fails if it already exists
    CREATE = auto()
    # Open an existing file for reading
    READ_ONLY = auto()
    # Open an existing file for reading and writing
    READ_WRITE = auto()


class FileSystem:
    """
    Versioned file system backed by a reply-threaded remote host.

    Every file is a thread on the remote host and every version of a file is a commit
    that replies to the version it replaced. Writes are split into segments that fit in
    a single post: the first segment replies to the head of the file and every further
    segment replies to the segment before it. The commit is identified by its first
    segment, and the ids of all segments are recorded in the index so that the payload
    can be reassembled when it isn't cached.

    Opening an existing file walks the replies of its thread on the remote host and
    merges them with the commits known to the index, so that versions written by other
    writers are found. Replies that are unknown to the index are adopted as commits
    that consist of a single post.

    The remote post and the local records of a write are not atomic. If recording a
    commit fails after it was posted, the post is orphaned and the failure is logged
    and reported to the caller.
    """

    def __init__(
        self,
        user: str,
        adapter: RemoteAdapter,
        index: CommitIndex,
        cache: Optional[ContentCache] = None,
        chunker: Optional[Chunker] = None,
        merge_strategy: Optional[MergeStrategy] = None,
        envelope: bool = False,
    ) -> None:
        """
        Instantiate a file system for the given user with its collaborators.

        If envelope is set then payloads are posted in a self-describing (optionally
        compressed) envelope, see xfiles.content.codec.
        """
        self.user = user.lstrip("@")

        self._adapter = adapter
        self._index = index
        self._cache = cache if cache is not None else ContentCache()
        self._chunker = chunker or Chunker()
        self._merge_strategy = merge_strategy
        self._envelope = envelope

    @staticmethod
    async def connect(
        user: str,
        adapter: RemoteAdapter,
        db_location: Optional[str] = None,
        config: Optional[Config] = None,
        **kwargs: Any,
    ) -> FileSystem:
        """
        Open the index of the user and create a file system with it.

        The index is stored at db_location, or the path from the config, or in
        xfiles_<user>.db in the working directory. Use ":memory:" for an index that
        doesn't outlive the file system.
        """
        config = config or Config()
        user = user.lstrip("@")

        location = db_location or config.index.path or f"xfiles_{user}.db"
        index = await CommitIndex.open(location, config.index.pool_size)

        kwargs.setdefault("chunker", Chunker(config.remote.max_segment))
        kwargs.setdefault("envelope", config.content.envelope)

        return FileSystem(user, adapter, index, **kwargs)

    async def close(self) -> None:
        """Close the index."""
        await self._index.close()

    async def __aenter__(self) -> FileSystem:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def cache(self) -> ContentCache:
        """Return the content cache shared by all handles of the file system."""
        return self._cache

    @property
    def index(self) -> CommitIndex:
        """Return the local index."""
        return self._index

    #
    # File operations
    #

    async def open(self, path: str, mode: OpenMode = OpenMode.READ_ONLY) -> FileHandle:
        """Open (or create) the file at the given path."""
        path = normalize_path(path)

        if mode == OpenMode.CREATE:
            commit = await self._create(path)
            root_id = commit.id
        else:
            root_id = await self._root_of(path)
            commit = await self._resolve_head(root_id)

        log.debug(f"opened {path} at {commit.id} ({mode.name})")

        return FileHandle(
            self,
            path,
            root_id,
            commit,
            writable=mode != OpenMode.READ_ONLY,
            merge_strategy=self._merge_strategy,
        )

    async def list(self, prefix: str = "") -> List[str]:
        """List the paths of all files, or of those in the directory at prefix."""
        prefix = prefix.strip("/")
        paths = await self._index.list_files()

        if not prefix:
            return paths

        return [p for p in paths if p == prefix or p.startswith(prefix + "/")]

    async def history(self, path: str) -> List[Commit]:
        """Return all commits of a file from oldest to newest."""
        root_id = await self._root_of(normalize_path(path))
        graph = await self._index_graph(root_id)

        # Sorting is stable, so commits with equal timestamps stay in traversal order
        return sorted(graph, key=lambda commit: commit.timestamp)

    async def exists(self, path: str) -> bool:
        """Check if a file exists at the given path."""
        return await self._index.file_exists(normalize_path(path))

    async def read_version(self, path: str, commit_id: PostId) -> bytes:
        """Read the contents of a file as of one of its commits."""
        root_id = await self._root_of(normalize_path(path))
        graph = await self._index_graph(root_id)

        commit = graph.get_commit(commit_id)

        if commit is None:
            raise CommitNotFound(commit_id)

        return await self._load_content(commit)

    async def forks(self, path: str) -> List[PostId]:
        """Return the ids of all heads of a file, more than one if it has forked."""
        root_id = await self._root_of(normalize_path(path))
        graph = await self._load_graph(root_id)

        return graph.detect_forks(root_id)

    #
    # Protocol used by file handles
    #

    async def _create(self, path: str) -> Commit:
        """Post the root of a new file and register it."""
        if await self._index.file_exists(path):
            raise AlreadyExists(path)

        root_id = await self._adapter.store(constants.ROOT_PAYLOAD)

        commit = Commit(
            id=root_id,
            parents=[],
            content_hash=digest(constants.ROOT_PAYLOAD),
            author=self.user,
            mime=constants.ROOT_MIME,
            size=len(constants.ROOT_PAYLOAD),
        )

        await self._record(commit, [(root_id, constants.ROOT_PAYLOAD)])
        await self._index.register_file(path, root_id)

        self._cache.put(root_id, constants.ROOT_PAYLOAD)

        log.info(f"created {path} with root {root_id}")

        return commit

    async def _append(
        self, parent_id: PostId, data: bytes, mime: str
    ) -> Tuple[Commit, ContentRef]:
        """Post data as a new commit on top of the given parent."""
        payload = codec.encode(data, mime) if self._envelope else data

        # Envelopes are ASCII, raw payloads must be text on hosts that only take text
        text = self._adapter.text_only and not self._envelope

        if text:
            try:
                payload.decode("utf-8")
            except UnicodeDecodeError as e:
                raise InvalidEncoding(
                    f"content is not valid UTF-8, enable the envelope for binary "
                    f"data: {e}"
                ) from e

        segments: List[Tuple[PostId, bytes]] = []
        reply_to = parent_id

        for segment in self._chunker.chunk(payload, text=text):
            reply_to = await self._adapter.store_reply(reply_to, segment)
            segments.append((reply_to, segment))

        commit = Commit(
            id=segments[0][0],
            parents=[parent_id],
            content_hash=digest(data),
            author=self.user,
            mime=mime,
            size=len(data),
        )

        await self._record(commit, segments)

        self._cache.put(commit.id, data)

        log.debug(f"committed {commit.id} on {parent_id} in {len(segments)} segment(s)")

        return commit, ContentRef(
            chunks=[segment_id for segment_id, _ in segments],
            hash=commit.content_hash,
            size=commit.size,
        )

    async def _append_tombstone(self, parent_id: PostId) -> Commit:
        """Post a commit that marks the file as deleted."""
        tombstone_id = await self._adapter.store_reply(
            parent_id, constants.TOMBSTONE_PAYLOAD
        )

        commit = Commit(
            id=tombstone_id,
            parents=[parent_id],
            content_hash=digest(b""),
            author=self.user,
            mime=constants.TOMBSTONE_MIME,
            size=0,
        )

        await self._record(commit, [(tombstone_id, constants.TOMBSTONE_PAYLOAD)])

        self._cache.put(tombstone_id, b"")

        return commit

    async def _record(
        self, commit: Commit, segments: List[Tuple[PostId, bytes]]
    ) -> None:
        """Store a freshly posted commit and its segments in the index."""
        try:
            await self._index.store_commit(commit)
            await self._index.store_chunks(commit.id, segments)
            await self._index.set_head(commit.id)
        except XFilesError as e:
            orphans = ", ".join(segment_id for segment_id, _ in segments)
            log.error(f"failed to record commit, orphaned posts {orphans}: {e}")
            raise

        commit.is_head = True

    async def _load_content(self, commit: Commit) -> bytes:
        """Retrieve the full payload of a commit from the cache or the remote host."""
        data = self._cache.get(commit.id)

        if data is not None:
            return data

        if commit.is_root or commit.is_tombstone:
            data = b""
        else:
            segment_ids = [c for c, _ in await self._index.get_chunks(commit.id)]

            # Adopted commits consist of a single post
            if not segment_ids:
                segment_ids = [commit.id]

            payload = self._chunker.recombine(
                [await self._adapter.fetch(segment_id) for segment_id in segment_ids]
            )

            data = codec.decode(payload)[1] if self._envelope else payload

            if not verify(data, commit.content_hash):
                raise HashMismatch(commit.content_hash, digest(data))

        self._cache.put(commit.id, data)

        return data

    async def _get_commit(self, commit_id: PostId) -> Commit:
        """Retrieve a commit from the index."""
        commit = await self._index.get_commit(commit_id)

        if commit is None:
            raise CommitNotFound(commit_id)

        return commit

    async def _root_of(self, path: str) -> PostId:
        """Retrieve the id of the root commit of a file."""
        root_id = await self._index.get_file_root(path)

        if root_id is None:
            raise FileNotFound(path)

        return root_id

    async def _resolve_head(self, root_id: PostId) -> Commit:
        """Find the current head of a file from the remote thread and the index."""
        graph = await self._load_graph(root_id)

        return graph.find_head(root_id)

    async def _durable_head(self, root_id: PostId) -> Commit:
        """Find the current head of a file from the index alone."""
        graph = await self._index_graph(root_id)

        return graph.find_head(root_id)

    async def _index_graph(self, root_id: PostId) -> CommitGraph:
        """Load the commits of a file that are recorded in the index."""
        graph = CommitGraph()
        graph.add_commit(await self._get_commit(root_id))

        queue: Deque[PostId] = collections.deque([root_id])

        while queue:
            for child in await self._index.get_children(queue.popleft()):
                if child.id not in graph:
                    graph.add_commit(child)
                    queue.append(child.id)

        return graph

    async def _load_graph(self, root_id: PostId) -> CommitGraph:
        """
        Load the commits of a file from both the index and the remote thread.

        The replies to every commit are listed on the remote host. Replies that are
        continuation segments of a commit are skipped and replies that are unknown to
        the index are adopted as new commits.
        """
        graph = CommitGraph()
        graph.add_commit(await self._get_commit(root_id))

        queue: Deque[PostId] = collections.deque([root_id])
        skipped: Set[PostId] = set()

        while queue:
            parent_id = queue.popleft()

            children = {c.id: c for c in await self._index.get_children(parent_id)}

            for reply_id in await self._adapter.fetch_replies(parent_id):
                if reply_id in children or reply_id in graph or reply_id in skipped:
                    continue

                if await self._index.is_chunk(reply_id):
                    skipped.add(reply_id)
                    continue

                commit = await self._index.get_commit(reply_id)

                if commit is None:
                    commit = await self._adopt(parent_id, reply_id)

                if commit is None:
                    skipped.add(reply_id)
                else:
                    children[reply_id] = commit

            for child in children.values():
                if child.id not in graph:
                    graph.add_commit(child)
                    queue.append(child.id)

        return graph

    async def _adopt(self, parent_id: PostId, reply_id: PostId) -> Optional[Commit]:
        """
        Record a reply that was posted by another writer as a commit.

        The commit is stamped with the creation time and author reported by the host,
        so that it is ordered correctly against commits that were recorded locally.
        """
        post = await self._adapter.fetch_post(reply_id)

        content = post.content
        mime = constants.DEFAULT_MIME

        # Tombstones are never wrapped in an envelope
        if content == constants.TOMBSTONE_PAYLOAD:
            content = b""
            mime = constants.TOMBSTONE_MIME
        elif self._envelope:
            try:
                header, content = codec.decode(content)
            except InvalidEncoding as e:
                log.warning(f"ignoring reply {reply_id} to {parent_id}: {e}")
                return None

            mime = header.mime

        commit = Commit(
            id=reply_id,
            parents=[parent_id],
            content_hash=digest(content),
            author=post.author or constants.UNKNOWN_AUTHOR,
            mime=mime,
            size=len(content),
        )

        if post.created_at is not None:
            commit.timestamp = post.created_at

        await self._index.store_commit(commit)
        self._cache.put(reply_id, content)

        log.info(f"adopted reply {reply_id} to {parent_id} as commit")

        return commit


def normalize_path(path: str) -> str:
    """Strip the leading slash of a path and check that it is valid."""
    normalized = path.lstrip("/")

    if not normalized or "\0" in normalized:
        raise InvalidPath(path)

    if any(part in ("", ".", "..") for part in normalized.split("/")):
        raise InvalidPath(path)

    return normalized
