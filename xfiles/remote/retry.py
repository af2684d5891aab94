"""Module implementing retries of failing remote calls."""

import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from xfiles.logger import log

T = TypeVar("T")


class RetryPolicy:
    """
    Exponential backoff for operations that fail intermittently.

    An operation is attempted up to max_attempts times. After every failed attempt the
    policy sleeps before trying again, starting at initial_backoff seconds and
    multiplying the delay after every sleep, up to max_backoff seconds.

    Only exceptions of the types in retry_on are retried. Other exceptions and the
    exception of the final attempt propagate to the caller.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        initial_backoff: float = 0.1,
        max_backoff: float = 30.0,
        multiplier: float = 2.0,
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    ) -> None:
        """Instantiate a retry policy."""
        if max_attempts < 1:
            raise ValueError(f"invalid number of attempts {max_attempts}")

        self.max_attempts = max_attempts
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.multiplier = multiplier
        self.retry_on = retry_on

    async def retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run the operation until it succeeds or runs out of attempts."""
        backoff = self.initial_backoff
        attempt = 0

        while True:
            attempt += 1

            try:
                return await operation()
            except self.retry_on as e:
                if attempt >= self.max_attempts:
                    log.error(f"giving up after {attempt} attempts: {e}")
                    raise

                log.warning(f"attempt {attempt} failed, retrying in {backoff}s: {e}")

            await asyncio.sleep(backoff)

            backoff = min(backoff * self.multiplier, self.max_backoff)
