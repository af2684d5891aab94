"""
Modules that expose the commit history on the remote host as a file system.

A file is a thread on the remote host. Its root post is created when the file is
created and every version of the file is posted as a reply to the previous version.
The local index maps paths to root posts and records every commit, so that the current
version of a file can be found without walking the whole thread.

Files are opened as handles that track the head of the file. Reads are served from a
process-wide content cache when possible and writes post new versions on top of the
head of the handle.
"""

from .file import FileHandle
from .filesystem import FileSystem, OpenMode
from .merge import LastWriterWins, MergeStrategy

__all__ = [
    "FileHandle",
    "FileSystem",
    "LastWriterWins",
    "MergeStrategy",
    "OpenMode",
]
