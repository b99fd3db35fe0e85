"""
Batch Dispatcher
Concurrent fan-out of one retrying insert per document with a barrier join per batch
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

from .ledger import RunCounters
from .writer import RetryingWriter, WriteResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Awaitable[Any]]


class BatchDispatcher:
    """
    Writes a batch of documents concurrently and waits for all of them

    Concurrency width equals the batch size unless max_concurrency is set.
    The running total is only updated once the whole batch has joined.
    """

    def __init__(self, writer: RetryingWriter, counters: RunCounters,
                 progress_callback: Optional[ProgressCallback] = None,
                 max_concurrency: Optional[int] = None):
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.writer = writer
        self.counters = counters
        self.progress_callback = progress_callback
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency else None

    async def _write(self, document: Dict[str, Any]) -> WriteResult:
        if self._semaphore is None:
            return await self.writer.write(document)
        async with self._semaphore:
            return await self.writer.write(document)

    async def dispatch(self, batch: Sequence[Dict[str, Any]]) -> int:
        """Dispatch a batch and return the running total of dispatched documents"""
        if not batch:
            return self.counters.documents_dispatched

        tasks = [asyncio.ensure_future(self._write(document)) for document in batch]
        try:
            await asyncio.gather(*tasks)
        except Exception:
            # Fatal error: stop the rest of the batch before propagating
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        total = self.counters.record_batch(len(batch))

        if self.progress_callback:
            # Keep INFO quiet while a progress bar owns the console
            logger.debug(f"Total documents copied so far: {total:,}")
            await self.progress_callback(total)
        else:
            logger.info(f"Total documents copied so far: {total:,}")

        return total
