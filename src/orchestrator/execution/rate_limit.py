"""Rate-limited batch iteration for handlers that touch many items.

Platform adapters never retry or back off. Handlers that make one call
per item run those calls through RateLimitedBatcher, which processes
items in fixed-size batches and sleeps between batches. Every item is
attempted; per-item failures, expected or not, are returned rather than
raised.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator, Sequence
from typing import TypeVar

from src.errors import DomainError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class RateLimitedBatcher:
    """Runs an async call per item in throttled batches.

    Args:
        batch_size: Items per batch, processed sequentially.
        delay_seconds: Pause between consecutive batches.
        sleep: Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        batch_size: int = 10,
        delay_seconds: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if delay_seconds < 0:
            raise ValueError("delay_seconds cannot be negative")
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def batches(self, items: Sequence[T]) -> Iterator[Sequence[T]]:
        """Split items into consecutive batches."""
        for start in range(0, len(items), self.batch_size):
            yield items[start:start + self.batch_size]

    async def run(
        self,
        items: Sequence[T],
        call: Callable[[T], Awaitable[R]],
    ) -> list[tuple[T, R | None, Exception | None]]:
        """Call ``call`` on every item.

        Returns:
            (item, result, error) per item, in input order. Exactly one
            of result and error is set.
        """
        outcomes: list[tuple[T, R | None, Exception | None]] = []
        for index, batch in enumerate(self.batches(items)):
            if index > 0 and self.delay_seconds > 0:
                await self._sleep(self.delay_seconds)
            for item in batch:
                try:
                    outcomes.append((item, await call(item), None))
                except DomainError as e:
                    logger.warning("Batch item failed: %s", e)
                    outcomes.append((item, None, e))
                except Exception as e:
                    logger.exception("Unexpected error in batch item")
                    outcomes.append((item, None, e))
        return outcomes
