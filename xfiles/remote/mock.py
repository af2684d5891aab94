"""Module implementing a remote host that only exists in memory."""

import itertools
import time
from typing import Dict, List, Optional

from xfiles.dag import PostId
from xfiles.errors import ContentTooLarge, RemoteApiError
from xfiles.remote.adapter import Post, RemoteAdapter


class MockAdapter(RemoteAdapter):
    """
    Remote host that keeps its posts in memory.

    Post ids are generated from a counter, so they are deterministic for a given
    sequence of calls. All state is owned by the instance, so separate instances are
    completely independent of each other.

    If max_post_size is set then posts larger than that are rejected like the real host
    would, and if text_only is set then so are posts that aren't valid UTF-8. Posts are
    attributed to author, which can be changed to simulate other accounts.
    """

    def __init__(
        self,
        author: Optional[str] = "mock_user",
        max_post_size: Optional[int] = None,
        text_only: bool = False,
    ) -> None:
        """Instantiate an empty mock host."""
        self.author = author
        self.text_only = text_only

        self._max_post_size = max_post_size

        self._posts: Dict[PostId, Post] = {}
        self._replies: Dict[PostId, List[PostId]] = {}
        self._ids = itertools.count(1)

    @property
    def post_count(self) -> int:
        """Return the number of posts stored on the mock host."""
        return len(self._posts)

    def get_post(self, post_id: PostId) -> Optional[Post]:
        """Return the post with the given id, if it exists."""
        return self._posts.get(post_id)

    async def fetch_post(self, post_id: PostId) -> Post:
        return self._get(post_id)

    async def store(self, content: bytes) -> PostId:
        return self._create(content, None)

    async def store_reply(self, parent_id: PostId, content: bytes) -> PostId:
        self._get(parent_id)

        return self._create(content, parent_id)

    async def fetch_replies(self, post_id: PostId) -> List[PostId]:
        self._get(post_id)

        return list(self._replies[post_id])

    def _get(self, post_id: PostId) -> Post:
        """Retrieve a post or fail like the remote host would."""
        try:
            return self._posts[post_id]
        except KeyError:
            raise RemoteApiError(f"post not found: {post_id}", 404)

    def _create(self, content: bytes, parent_id: Optional[PostId]) -> PostId:
        """Store a new post and register it as a reply to its parent."""
        if self._max_post_size is not None and len(content) > self._max_post_size:
            raise ContentTooLarge(len(content), self._max_post_size)

        if self.text_only:
            try:
                content.decode("utf-8")
            except UnicodeDecodeError:
                raise RemoteApiError("post is not valid text", 400)

        post_id = f"mock_post_{next(self._ids)}"

        self._posts[post_id] = Post(
            id=post_id,
            content=bytes(content),
            parent_id=parent_id,
            author=self.author,
            created_at=time.time(),
        )
        self._replies[post_id] = []

        if parent_id is not None:
            self._replies[parent_id].append(post_id)

        return post_id
