"""
Bounded batch runner: fixed concurrency ceiling plus an inter-batch delay.

Caps instantaneous load on the publisher regardless of how many posts are
due in a tick.  Items are split into consecutive chunks of ``concurrency``;
each chunk runs concurrently and is fully settled before the runner sleeps
``delay_ms`` and moves on.  No sleep follows the last chunk.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar, Union

from publish_scheduler.exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BoundedBatchRunner:
    """Dispatches work in fixed-size concurrent batches.

    One item's failure never cancels or aborts its siblings: every batch is
    gathered with ``return_exceptions=True`` and an exception escaping a
    worker is returned in that item's slot instead of being raised.

    Args:
        sleep: Coroutine function used for the inter-batch pause.  Defaults
            to :func:`asyncio.sleep`; tests inject a recorder.
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._sleep = sleep

    @staticmethod
    def partition(items: Sequence[T], size: int) -> List[List[T]]:
        """Split *items* into consecutive chunks of at most *size*."""
        if size < 1:
            raise ValidationError(f"concurrency must be positive, got {size}")
        return [list(items[i:i + size]) for i in range(0, len(items), size)]

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[R]],
        concurrency: int,
        delay_ms: int,
        label: str = "batch",
    ) -> List[Union[R, BaseException]]:
        """Run *worker* over *items* with bounded concurrency.

        Args:
            items: Work items, dispatched in order.
            worker: Coroutine function applied to each item.
            concurrency: Maximum items in flight at once (``c``).
            delay_ms: Pause between batches in milliseconds (``d``).
            label: Name used in log lines.

        Returns:
            One entry per item, in input order: the worker's return value or
            the exception it raised.

        Raises:
            ValidationError: If *concurrency* < 1 or *delay_ms* < 0.
        """
        if delay_ms < 0:
            raise ValidationError(f"delay_ms cannot be negative, got {delay_ms}")
        batches = self.partition(items, concurrency)
        if not batches:
            return []

        logger.info(
            "[BATCH] %s: %d items in %d batches (concurrency=%d, delay=%dms)",
            label,
            len(items),
            len(batches),
            concurrency,
            delay_ms,
        )

        results: List[Union[R, BaseException]] = []
        for index, batch in enumerate(batches):
            settled = await asyncio.gather(
                *(worker(item) for item in batch),
                return_exceptions=True,
            )
            for item, outcome in zip(batch, settled):
                if isinstance(outcome, BaseException):
                    logger.error(
                        "[BATCH] %s: worker raised for %r: %s",
                        label,
                        item,
                        outcome,
                    )
            results.extend(settled)

            if index < len(batches) - 1:
                logger.debug(
                    "[BATCH] %s: rate limiting, waiting %dms before next batch",
                    label,
                    delay_ms,
                )
                await self._sleep(delay_ms / 1000)

        return results


__all__ = [
    "BoundedBatchRunner",
]
