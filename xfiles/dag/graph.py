"""Module implementing traversal of the commit graph of a file."""

from __future__ import annotations

import collections
from typing import Deque, Dict, Iterator, List, Optional, Set

from xfiles.dag.commit import Commit, PostId
from xfiles.errors import CommitNotFound


class CommitGraph:
    """
    In-memory view of a set of loaded commits.

    The graph is transient and can be rebuilt at any time from the commit records in the
    index. Besides the commits themselves it maintains a mapping from every commit to
    the commits that list it as a parent, which is updated as commits are added. This
    keeps forward traversal linear in the size of the graph instead of scanning all
    loaded commits for every visited node.

    Children are kept in the order in which they were added, which makes traversal
    order (and with that the tie-break between heads with identical timestamps)
    deterministic.
    """

    def __init__(self) -> None:
        """Instantiate an empty graph."""
        self._commits: Dict[PostId, Commit] = {}
        self._children: Dict[PostId, List[PostId]] = collections.defaultdict(list)

    def __len__(self) -> int:
        return len(self._commits)

    def __contains__(self, commit_id: object) -> bool:
        return commit_id in self._commits

    def __iter__(self) -> Iterator[Commit]:
        return iter(self._commits.values())

    def add_commit(self, commit: Commit) -> None:
        """Add a commit to the graph or replace a previously added one with its id."""
        previous = self._commits.get(commit.id)

        if previous is not None:
            for parent_id in previous.parents:
                siblings = self._children.get(parent_id)
                if siblings and commit.id in siblings:
                    siblings.remove(commit.id)

        self._commits[commit.id] = commit

        for parent_id in commit.parents:
            if commit.id not in self._children[parent_id]:
                self._children[parent_id].append(commit.id)

    def get_commit(self, commit_id: PostId) -> Optional[Commit]:
        """Return the commit with the given id if it has been loaded."""
        return self._commits.get(commit_id)

    def children(self, commit_id: PostId) -> List[Commit]:
        """Return the loaded commits that list the given commit as a parent."""
        return [self._commits[c] for c in self._children.get(commit_id, [])]

    def find_head(self, start: PostId) -> Commit:
        """
        Find the current head of the history that starts at the given commit.

        All commits reachable from the start commit are collected and the ones without
        any children are heads. If there is more than one head then the history has
        forked and the most recent head wins.
        """
        heads = self._heads(start)

        if len(heads) == 0:
            raise CommitNotFound(start)

        latest = heads[0]

        for head in heads[1:]:
            if head.timestamp > latest.timestamp:
                latest = head

        return latest

    def get_ancestors(self, commit_id: PostId) -> List[Commit]:
        """
        Return the commit with the given id and all of its ancestors.

        Commits are returned in the order in which a breadth-first walk along the parent
        links visits them. Parents that haven't been loaded are skipped.
        """
        ancestors: List[Commit] = []

        visited: Set[PostId] = {commit_id}
        queue: Deque[PostId] = collections.deque([commit_id])

        while queue:
            commit = self._commits.get(queue.popleft())

            if commit is None:
                continue

            ancestors.append(commit)

            for parent_id in commit.parents:
                if parent_id not in visited:
                    visited.add(parent_id)
                    queue.append(parent_id)

        return ancestors

    def detect_forks(self, root: PostId) -> List[PostId]:
        """Return the ids of all heads reachable from the given commit."""
        return [head.id for head in self._heads(root)]

    def _reachable(self, start: PostId) -> List[PostId]:
        """Return the ids of all commits reachable from the start commit (inclusive)."""
        if start not in self._commits:
            return []

        reachable: List[PostId] = [start]

        visited: Set[PostId] = {start}
        queue: Deque[PostId] = collections.deque([start])

        while queue:
            for child_id in self._children.get(queue.popleft(), []):
                if child_id not in visited:
                    visited.add(child_id)
                    reachable.append(child_id)
                    queue.append(child_id)

        return reachable

    def _heads(self, start: PostId) -> List[Commit]:
        """Return the reachable commits without children in discovery order."""
        return [
            self._commits[commit_id]
            for commit_id in self._reachable(start)
            if len(self._children.get(commit_id, [])) == 0
        ]
