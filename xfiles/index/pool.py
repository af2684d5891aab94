"""Module implementing a bounded pool of SQLite connections."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import sqlite3
from typing import AsyncIterator, List

import aiosqlite

from xfiles.errors import DatabaseError
from xfiles.logger import log

MEMORY = ":memory:"


class ConnectionPool:
    """
    Pool of at most size connections to an SQLite database.

    Connections are opened on demand and returned to the pool after use. Callers wait
    if all connections are in use. Every call is a separate unit of work, there are no
    transactions that span multiple borrowed connections.

    An in-memory database exists per connection, so the pool is limited to a single
    connection in that case to give all callers the same database.

    Any sqlite3.Error raised while a connection is borrowed is reraised as a
    DatabaseError.
    """

    def __init__(self, database: str, size: int = 5) -> None:
        """Instantiate a pool for the database at the given path or ":memory:"."""
        if size < 1:
            raise ValueError(f"invalid pool size {size}")

        self.database = database
        self.size = 1 if database == MEMORY else size

        self._idle: asyncio.Queue = asyncio.Queue()
        self._connections: List[aiosqlite.Connection] = []
        self._open_lock = asyncio.Lock()
        self._closed = False

    @property
    def connection_count(self) -> int:
        """Return the number of connections opened by the pool."""
        return len(self._connections)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Borrow a connection from the pool."""
        if self._closed:
            raise DatabaseError("connection pool is closed")

        conn = await self._acquire()

        try:
            yield conn
        except sqlite3.Error as e:
            raise DatabaseError(f"{self.database}: {e}") from e
        finally:
            self._idle.put_nowait(conn)

    async def _acquire(self) -> aiosqlite.Connection:
        """Take an idle connection or open a new one if the pool isn't full yet."""
        if self._idle.empty():
            async with self._open_lock:
                if self._idle.empty() and len(self._connections) < self.size:
                    self._connections.append(await self._open())
                    return self._connections[-1]

        return await self._idle.get()

    async def _open(self) -> aiosqlite.Connection:
        """Open a new connection to the database."""
        try:
            conn = await aiosqlite.connect(self.database, timeout=5.0)

            if self.database != MEMORY:
                await conn.execute("PRAGMA journal_mode=WAL;")
            await conn.execute("PRAGMA busy_timeout=5000;")
        except sqlite3.Error as e:
            raise DatabaseError(f"failed to open {self.database}: {e}") from e

        log.debug(f"opened connection {len(self._connections) + 1} to {self.database}")

        return conn

    async def close(self) -> None:
        """Close all connections of the pool."""
        self._closed = True

        for conn in self._connections:
            await conn.close()

        self._connections.clear()
