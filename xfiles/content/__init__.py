"""
Modules that deal with the payloads of commits.

The remote host limits the size of a single post, so payloads are split into segments
that are posted as a chain of replies and are recombined upon reading. Payloads that
have been written or read once are kept in a cache for the lifetime of the process,
because posts are immutable and fetching them again is slow and rate limited.
"""

from .cache import ContentCache
from .chunker import Chunker
from .common import digest, verify

__all__ = [
    "Chunker",
    "ContentCache",
    "digest",
    "verify",
]
