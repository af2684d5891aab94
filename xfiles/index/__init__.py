"""
Modules that maintain the local index of files and commits.

Deriving the history of a file from the remote host requires walking the replies of
every post of the file, which is slow and eats into the rate limits of the host. The
index keeps a durable record of every commit and segment this process has written or
discovered, along with the mapping from paths to the root posts of files, in an SQLite
database.
"""

from .pool import ConnectionPool
from .store import CommitIndex

__all__ = [
    "CommitIndex",
    "ConnectionPool",
]
