"""Module declaring the interface to the remote host."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from xfiles.dag import PostId


@dataclass
class Post:
    """
    A post as reported by the remote host.

    Metadata that the host doesn't report is None. The creation time is in seconds
    since the epoch.
    """

    id: PostId
    content: bytes
    author: Optional[str] = None
    created_at: Optional[float] = None
    parent_id: Optional[PostId] = None


class RemoteAdapter(ABC):
    """
    Interface of a reply-threaded content host.

    Posts are immutable and identified by opaque ids assigned by the host. A post is
    either a new thread or a reply to an existing post.

    Hosts that only accept text set text_only, in which case every posted segment must
    be valid UTF-8 on its own.
    """

    text_only = False

    @abstractmethod
    async def fetch_post(self, post_id: PostId) -> Post:
        """Retrieve a post along with its metadata."""

    async def fetch(self, post_id: PostId) -> bytes:
        """Retrieve the content of a post."""
        return (await self.fetch_post(post_id)).content

    @abstractmethod
    async def store(self, content: bytes) -> PostId:
        """Create a new post and return its id."""

    @abstractmethod
    async def store_reply(self, parent_id: PostId, content: bytes) -> PostId:
        """Create a post in reply to another post and return its id."""

    @abstractmethod
    async def fetch_replies(self, post_id: PostId) -> List[PostId]:
        """Retrieve the ids of all direct replies to a post."""

    async def close(self) -> None:
        """Release any resources (like connections) held by the adapter."""
