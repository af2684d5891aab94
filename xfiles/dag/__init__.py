"""
Modules that model the version history of files as a graph of commits.

Every post on the remote host that belongs to a file is a commit. The post that
establishes the file is its root commit and every write is a reply to the commit that
was the head of the file at the time. Replies only ever point at posts that already
exist, which makes the relation between commits a directed acyclic graph.

Normally this graph is a single chain, but writers that don't know about each other can
both reply to the same commit. The file then has more than one head (a fork) and the
most recently written head is considered current.
"""

from .commit import Commit, ContentRef, PostId
from .graph import CommitGraph

__all__ = [
    "Commit",
    "CommitGraph",
    "ContentRef",
    "PostId",
]
