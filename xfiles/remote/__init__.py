"""
Modules that talk to the remote host that stores the posts.

All of the file store is built on four operations on the remote host: fetching a post,
posting a new post, replying to a post and listing the replies to a post. These are
declared by the RemoteAdapter interface, which has an in-memory implementation for
testing and network clients for the REST API of the host.

The host enforces rate limits and is reached over the internet, so the network clients
throttle themselves with a sliding window rate limiter and retry failed requests with
exponential backoff.
"""

from .adapter import RemoteAdapter
from .mock import MockAdapter
from .rate_limit import RateLimiter
from .rest import BearerTokenAdapter, RestAdapter, SignedAdapter
from .retry import RetryPolicy

__all__ = [
    "BearerTokenAdapter",
    "MockAdapter",
    "RateLimiter",
    "RemoteAdapter",
    "RestAdapter",
    "RetryPolicy",
    "SignedAdapter",
]
