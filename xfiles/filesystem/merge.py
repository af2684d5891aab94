"""Module declaring how concurrent writes to the same file are reconciled."""

from abc import ABC, abstractmethod


class MergeStrategy(ABC):
    """
    Reconciliation of a pending write with a write that happened concurrently.

    Base is the version the pending write was based on, left is the version that was
    written in the meanwhile and right is the pending write. The returned contents are
    written on top of left. Raise MergeConflict if the versions can't be reconciled.
    """

    @abstractmethod
    def merge(self, base: bytes, left: bytes, right: bytes) -> bytes:
        """Return the reconciled contents of left and right."""


class LastWriterWins(MergeStrategy):
    """Strategy that discards the concurrent write in favour of the pending one."""

    def merge(self, base: bytes, left: bytes, right: bytes) -> bytes:
        return right
