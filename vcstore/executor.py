import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

from vcstore.config import MAX_CONCURRENT_LOOKUPS

log = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrentExecutor:
    """Runs lookups with at most ``max_concurrent`` in flight.

    Results are concatenated in the order the lookups were given, not the
    order they complete. The first failure fails the whole run.
    """

    def __init__(self, max_concurrent: int = MAX_CONCURRENT_LOOKUPS):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent

    async def run(self, lookups: Sequence[Callable[[], Awaitable[List[T]]]]) -> List[T]:
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def bounded(lookup):
            async with semaphore:
                return await lookup()

        log.debug("Running %d lookup(s), %d at a time", len(lookups), self.max_concurrent)
        batches = await asyncio.gather(*(bounded(lookup) for lookup in lookups))
        return [result for batch in batches for result in batch]
