"""
Source Stream
Top-level driver: pulls batches from the source cursor and hands them to the dispatcher
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from ..core.throttling import ThrottleClassifier, create_throttle_classifier
from .dispatcher import BatchDispatcher
from .ledger import FailureLedger, RunCounters
from .writer import BackoffPolicy

logger = logging.getLogger(__name__)


class StreamState(Enum):
    """Lifecycle of a source stream"""
    IDLE = "idle"
    FETCHING = "fetching"
    THROTTLED_WAIT = "throttled_wait"
    DISPATCHING = "dispatching"
    DONE = "done"
    ABORTED = "aborted"


class FetchRetriesExhausted(RuntimeError):
    """Raised when consecutive throttled cursor advances exceed the configured cap"""


class SourceStream:
    """
    Streams the whole source collection through the dispatcher

    Batches are processed strictly one after another. A throttled cursor
    advance is retried after a random backoff, resuming after the last
    document read.
    With max_fetch_retries=None that retry is unbounded, matching a store
    that is expected to recover eventually; set a cap to fail instead.
    """

    def __init__(self, source, dispatcher: BatchDispatcher, ledger: FailureLedger,
                 batch_size: int,
                 backoff: Optional[BackoffPolicy] = None,
                 classifier: Optional[ThrottleClassifier] = None,
                 counters: Optional[RunCounters] = None,
                 no_cursor_timeout: bool = True,
                 max_fetch_retries: Optional[int] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if max_fetch_retries is not None and max_fetch_retries < 0:
            raise ValueError(f"max_fetch_retries must be >= 0, got {max_fetch_retries}")
        self.source = source
        self.dispatcher = dispatcher
        self.ledger = ledger
        self.batch_size = batch_size
        self.backoff = backoff or BackoffPolicy()
        self.classifier = classifier or create_throttle_classifier()
        self.counters = counters or dispatcher.counters
        self.no_cursor_timeout = no_cursor_timeout
        self.max_fetch_retries = max_fetch_retries
        self._sleep = sleep
        self.state = StreamState.IDLE

    async def _advance(self, cursor) -> bool:
        """Advance the cursor, absorbing throttles"""
        consecutive_throttles = 0
        while True:
            self.state = StreamState.FETCHING
            try:
                return await cursor.advance()
            except Exception as e:
                if not self.classifier.is_transient(e):
                    logger.error(f"❌ Error reading from source: {e}")
                    raise

                consecutive_throttles += 1
                self.counters.throttled_fetches += 1
                if self.max_fetch_retries is not None and consecutive_throttles > self.max_fetch_retries:
                    raise FetchRetriesExhausted(
                        f"Source still throttled after {consecutive_throttles} consecutive attempts"
                    ) from e

                self.state = StreamState.THROTTLED_WAIT
                delay = self.backoff.next_delay()
                logger.warning(f"⚠️ Source read throttled, retrying in {delay:.2f}s")
                await self._sleep(delay)

    async def run(self) -> FailureLedger:
        """Migrate every document in the source and return the failure ledger"""
        if self.state != StreamState.IDLE:
            raise RuntimeError(f"Source stream already used (state: {self.state.value})")

        self.state = StreamState.FETCHING
        cursor = self.source.open_batch_cursor(self.batch_size, no_cursor_timeout=self.no_cursor_timeout)
        try:
            while await self._advance(cursor):
                self.state = StreamState.DISPATCHING
                await self.dispatcher.dispatch(cursor.current)
        except BaseException:
            self.state = StreamState.ABORTED
            raise
        finally:
            await cursor.close()

        self.state = StreamState.DONE
        logger.info(
            f"Source exhausted: {self.counters.documents_dispatched:,} documents in "
            f"{self.counters.batches_dispatched:,} batches, {len(self.ledger):,} failed"
        )
        return self.ledger
