"""
Exceptions raised by xfiles.

Every error derives from XFilesError so that callers can handle all failures of the
file store in one place. Failures of underlying libraries (sqlite, httpx, json) are
wrapped into one of these types at the boundary where they occur, with the original
exception chained as the cause.
"""

from typing import Optional


class XFilesError(Exception):
    """Base class of all xfiles errors."""


class DatabaseError(XFilesError):
    """The local index database failed or is incompatible."""


class NetworkError(XFilesError):
    """The remote host could not be reached."""


class SerializationError(XFilesError):
    """A stored or received document could not be (de)serialized."""


class StorageIOError(XFilesError):
    """A local I/O operation failed."""


class InvalidEncoding(XFilesError):
    """Posted content does not follow the expected encoding."""


class CommitNotFound(XFilesError):
    """A commit is not known to the graph or the index."""


class FileNotFound(XFilesError):
    """No file is registered at the given path."""


class AlreadyExists(XFilesError):
    """A file is already registered at the given path."""


class InvalidPath(XFilesError):
    """A path is empty or contains invalid components."""


class ReadOnlyFile(XFilesError):
    """A file opened for reading only was modified."""


class RateLimitExceeded(XFilesError):
    """The remote host refused a request because of rate limiting."""

    def __init__(self, message: str = "rate limit exceeded") -> None:
        """Instantiate with an optional message from the remote host."""
        super().__init__(message)


class RemoteApiError(XFilesError):
    """The remote host rejected a request with an error message."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        """Instantiate with the message and (if any) HTTP status of the remote host."""
        super().__init__(message if status is None else f"{message} (status {status})")

        self.message = message
        self.status = status


class ContentTooLarge(XFilesError):
    """A payload exceeds what the remote host accepts in a single post."""

    def __init__(self, size: int, limit: int) -> None:
        """Instantiate with the offending size and the applicable limit."""
        super().__init__(f"content too large: {size} bytes (limit {limit})")

        self.size = size
        self.limit = limit


class HashMismatch(XFilesError):
    """Content does not match the digest it was recorded with."""

    def __init__(self, expected: str, actual: str) -> None:
        """Instantiate with the recorded and the computed digest."""
        super().__init__(f"hash mismatch: expected {expected}, got {actual}")

        self.expected = expected
        self.actual = actual


class MergeConflict(XFilesError):
    """Concurrent versions of a file could not be reconciled."""


class ConcurrentModification(MergeConflict):
    """The head of a file moved while a write was being prepared."""

    def __init__(self, expected: str, actual: str) -> None:
        """Instantiate with the head the writer expected and the actual head."""
        super().__init__(f"head moved from {expected} to {actual}")

        self.expected = expected
        self.actual = actual
