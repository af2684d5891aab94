"""Module implementing the schema and queries of the local index."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import time
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import fasteners
from semver import VersionInfo

import xfiles.constants as constants
from xfiles.content import digest
from xfiles.dag import Commit, PostId
from xfiles.errors import AlreadyExists, DatabaseError, SerializationError
from xfiles.index.pool import ConnectionPool, MEMORY
from xfiles.logger import log

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS commits (
    id        TEXT PRIMARY KEY,
    parents   TEXT NOT NULL DEFAULT '[]',   -- JSON array of commit ids
    timestamp REAL NOT NULL,
    author    TEXT NOT NULL,
    hash      TEXT NOT NULL,
    mime      TEXT NOT NULL,
    size      INTEGER NOT NULL,
    is_head   INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS chunks (
    id            TEXT PRIMARY KEY,
    parent_commit TEXT NOT NULL,
    idx           INTEGER NOT NULL,
    size          INTEGER NOT NULL,
    hash          TEXT NOT NULL,
    FOREIGN KEY (parent_commit) REFERENCES commits(id)
);

CREATE TABLE IF NOT EXISTS files (
    path       TEXT PRIMARY KEY,
    root_id    TEXT NOT NULL,
    created_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_commits_timestamp ON commits(timestamp);
CREATE INDEX IF NOT EXISTS idx_chunks_parent ON chunks(parent_commit, idx);
"""

_COMMIT_COLUMNS = "id, parents, timestamp, author, hash, mime, size, is_head"


class CommitIndex:
    """
    Durable record of commits, their segments and the paths of files.

    The index exclusively owns these records. The commit graph of a file is rebuilt
    from them when needed, so the head flag stored with commits is merely a hint: it's
    set when a commit becomes a head but never cleared.

    Every method is a separate unit of work. Storing a commit, marking it as head and
    registering a path are independent writes that are not grouped in a transaction.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Instantiate an index on top of a pool of connections to a database."""
        self._pool = pool

    @staticmethod
    async def open(location: str = MEMORY, pool_size: int = 5) -> CommitIndex:
        """
        Open the index database at the given path, creating it if needed.

        Use ":memory:" for an index that only lives as long as the returned object.
        """
        index = CommitIndex(ConnectionPool(location, pool_size))

        try:
            if location == MEMORY:
                await index._init_schema()
            else:
                # Other processes may be creating the same database, wait for them
                # off the event loop
                lock = fasteners.InterProcessLock(f"{location}.lock")
                await asyncio.get_running_loop().run_in_executor(None, lock.acquire)

                try:
                    await index._init_schema()
                finally:
                    lock.release()
        except BaseException:
            await index.close()
            raise

        log.info(f"opened index at {location}")

        return index

    async def close(self) -> None:
        """Close all connections to the database."""
        await self._pool.close()

    async def _init_schema(self) -> None:
        """Create the schema and check if an existing schema is compatible."""
        async with self._pool.connection() as conn:
            await conn.executescript(_SCHEMA_SQL)

            async with conn.execute(
                "SELECT value FROM meta WHERE key = 'schema_version'"
            ) as cursor:
                row = await cursor.fetchone()

            if row is None:
                await conn.execute(
                    "INSERT INTO meta (key, value) VALUES ('schema_version', ?)",
                    (constants.SCHEMA_VERSION,),
                )
                await conn.commit()
            else:
                stored = VersionInfo.parse(row[0])
                current = VersionInfo.parse(constants.SCHEMA_VERSION)

                if stored.major != current.major:
                    raise DatabaseError(
                        f"incompatible index schema ({stored} != {current})"
                    )

    #
    # Commits
    #

    async def store_commit(self, commit: Commit) -> None:
        """Insert a commit or update the commit with the same id."""
        async with self._pool.connection() as conn:
            await conn.execute(
                f"""
                INSERT INTO commits ({_COMMIT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    parents = excluded.parents,
                    timestamp = excluded.timestamp,
                    author = excluded.author,
                    hash = excluded.hash,
                    mime = excluded.mime,
                    size = excluded.size,
                    is_head = excluded.is_head
                """,
                (
                    commit.id,
                    json.dumps(commit.parents),
                    commit.timestamp,
                    commit.author,
                    commit.content_hash,
                    commit.mime,
                    commit.size,
                    int(commit.is_head),
                ),
            )
            await conn.commit()

    async def get_commit(self, commit_id: PostId) -> Optional[Commit]:
        """Retrieve a commit by its id."""
        commits = await self._query_commits(
            f"SELECT {_COMMIT_COLUMNS} FROM commits WHERE id = ?", (commit_id,)
        )

        return commits[0] if commits else None

    async def get_children(self, parent_id: PostId) -> List[Commit]:
        """Retrieve all commits that list the given commit as one of their parents."""
        return await self._query_commits(
            f"""
            SELECT {_COMMIT_COLUMNS} FROM commits
            WHERE EXISTS (SELECT 1 FROM json_each(commits.parents) WHERE value = ?)
            ORDER BY timestamp, rowid
            """,
            (parent_id,),
        )

    async def set_head(self, commit_id: PostId) -> None:
        """Mark a commit as head (without clearing the flag of any other commit)."""
        async with self._pool.connection() as conn:
            await conn.execute(
                "UPDATE commits SET is_head = 1 WHERE id = ?", (commit_id,)
            )
            await conn.commit()

    async def get_heads(self) -> List[Commit]:
        """Retrieve all commits that have ever been marked as head."""
        return await self._query_commits(
            f"SELECT {_COMMIT_COLUMNS} FROM commits "
            "WHERE is_head = 1 ORDER BY timestamp"
        )

    async def _query_commits(self, sql: str, params: Tuple = ()) -> List[Commit]:
        """Run a query that selects commit columns and convert the rows to commits."""
        async with self._pool.connection() as conn:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()

        return [self._row_to_commit(row) for row in rows]

    @staticmethod
    def _row_to_commit(row: Sequence[Any]) -> Commit:
        """Convert a row of commit columns to a commit."""
        commit_id, parents, timestamp, author, hash, mime, size, is_head = row

        try:
            parent_ids = json.loads(parents)
        except ValueError as e:
            raise SerializationError(f"invalid parents of {commit_id}: {e}") from e

        return Commit(
            id=commit_id,
            parents=list(parent_ids),
            timestamp=timestamp,
            content_hash=hash,
            author=author,
            mime=mime,
            size=size,
            is_head=bool(is_head),
        )

    #
    # Segments
    #

    async def store_chunks(
        self, commit_id: PostId, segments: Iterable[Tuple[PostId, bytes]]
    ) -> None:
        """Record the posts (and contents) that make up the payload of a commit."""
        rows = [
            (segment_id, commit_id, idx, len(data), digest(data))
            for idx, (segment_id, data) in enumerate(segments)
        ]

        async with self._pool.connection() as conn:
            await conn.executemany(
                """
                INSERT OR REPLACE INTO chunks (id, parent_commit, idx, size, hash)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
            await conn.commit()

    async def get_chunks(self, commit_id: PostId) -> List[Tuple[PostId, str]]:
        """Retrieve the ids and digests of the segments of a commit in order."""
        async with self._pool.connection() as conn:
            async with conn.execute(
                "SELECT id, hash FROM chunks WHERE parent_commit = ? ORDER BY idx",
                (commit_id,),
            ) as cursor:
                rows = await cursor.fetchall()

        return [(row[0], row[1]) for row in rows]

    async def is_chunk(self, post_id: PostId) -> bool:
        """Check if a post is a continuation segment of a commit."""
        async with self._pool.connection() as conn:
            async with conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE id = ? AND idx > 0", (post_id,)
            ) as cursor:
                (count,) = await cursor.fetchone()

        return count > 0

    #
    # Files
    #

    async def register_file(self, path: str, root_id: PostId) -> None:
        """Register the root commit of a new file."""
        async with self._pool.connection() as conn:
            try:
                await conn.execute(
                    "INSERT INTO files (path, root_id, created_at) VALUES (?, ?, ?)",
                    (path, root_id, time.time()),
                )
            except sqlite3.IntegrityError:
                await conn.rollback()
                raise AlreadyExists(path)

            await conn.commit()

    async def get_file_root(self, path: str) -> Optional[PostId]:
        """Retrieve the id of the root commit of a file."""
        async with self._pool.connection() as conn:
            async with conn.execute(
                "SELECT root_id FROM files WHERE path = ?", (path,)
            ) as cursor:
                row = await cursor.fetchone()

        return row[0] if row else None

    async def list_files(self) -> List[str]:
        """List the paths of all registered files."""
        async with self._pool.connection() as conn:
            async with conn.execute("SELECT path FROM files ORDER BY path") as cursor:
                rows = await cursor.fetchall()

        return [row[0] for row in rows]

    async def file_exists(self, path: str) -> bool:
        """Check if a file is registered at the given path."""
        return await self.get_file_root(path) is not None
