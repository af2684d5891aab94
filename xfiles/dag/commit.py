"""Data structures describing commits and the posts they consist of."""

from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import List

import xfiles.constants as constants

# Identifier of a post on the remote host
PostId = str


@dataclass
class Commit:
    """
    Record of a single version of a file.

    The id is the identifier of the (first) post that carries the contents. Root commits
    have no parents and every other commit has exactly one, although the data model
    allows for more to support merges in the future.

    The content hash and size always describe the full logical payload of the version,
    even if it was posted as multiple segments.

    The head flag is informational only. It is set when a commit becomes the head of a
    file, but never cleared, so the current head must be derived from the graph.
    """

    id: PostId
    parents: List[PostId]
    content_hash: str
    author: str
    mime: str = constants.DEFAULT_MIME
    size: int = 0
    timestamp: float = field(default_factory=time.time)
    is_head: bool = False

    @property
    def is_root(self) -> bool:
        """Return whether this commit establishes a file."""
        return len(self.parents) == 0

    @property
    def is_tombstone(self) -> bool:
        """Return whether this commit marks its file as deleted."""
        return self.mime == constants.TOMBSTONE_MIME


@dataclass
class ContentRef:
    """Description of how one logical payload was posted as one or more segments."""

    chunks: List[PostId]
    hash: str
    size: int
