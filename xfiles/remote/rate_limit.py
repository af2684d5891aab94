"""Module implementing client-side throttling of remote calls."""

import asyncio
import collections
import time
from typing import Deque


class RateLimiter:
    """
    Sliding window rate limiter.

    Admits at most max_requests calls within any period of window seconds. The
    timestamps of admitted calls are kept in a ledger that is pruned upon every check,
    and callers that would exceed the limit wait until the oldest admitted call leaves
    the window.

    Callers are admitted one at a time in the order in which they started waiting. The
    wait is an ordinary asyncio sleep, so it can be cancelled or be subject to a
    timeout like any other await.
    """

    def __init__(self, max_requests: int, window: float) -> None:
        """Instantiate a limiter for max_requests calls per window seconds."""
        if max_requests < 1:
            raise ValueError(f"invalid request limit {max_requests}")

        self.max_requests = max_requests
        self.window = window

        self._requests: Deque[float] = collections.deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a call is admitted and record it."""
        async with self._lock:
            self._prune()

            while len(self._requests) >= self.max_requests:
                await asyncio.sleep(self._requests[0] + self.window - time.monotonic())
                self._prune()

            self._requests.append(time.monotonic())

    async def can_proceed(self) -> bool:
        """Check if a call would be admitted right now without recording one."""
        async with self._lock:
            self._prune()

            return len(self._requests) < self.max_requests

    def _prune(self) -> None:
        """Forget admitted calls that have left the window."""
        cutoff = time.monotonic() - self.window

        while self._requests and self._requests[0] <= cutoff:
            self._requests.popleft()
