"""
Retrying Document Writer
Single-document inserts with bounded, jittered retry on throttling
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from ..core.throttling import ThrottleClassifier, create_throttle_classifier
from .ledger import FailureLedger, RunCounters

logger = logging.getLogger(__name__)

DEFAULT_MIN_WAIT_MS = 1500
DEFAULT_MAX_WAIT_MS = 3000

# Shared by every backoff policy in the process
_jitter_source = random.Random()


@dataclass
class BackoffPolicy:
    """Uniformly random suspension between min_wait_ms and max_wait_ms"""
    min_wait_ms: int = DEFAULT_MIN_WAIT_MS
    max_wait_ms: int = DEFAULT_MAX_WAIT_MS
    rng: random.Random = field(default=_jitter_source, repr=False)

    def __post_init__(self):
        if self.min_wait_ms < 0:
            raise ValueError(f"min_wait_ms must be >= 0, got {self.min_wait_ms}")
        if self.max_wait_ms < self.min_wait_ms:
            raise ValueError(
                f"max_wait_ms ({self.max_wait_ms}) must be >= min_wait_ms ({self.min_wait_ms})"
            )

    def next_delay(self) -> float:
        """Next delay in seconds"""
        return self.rng.uniform(self.min_wait_ms, self.max_wait_ms) / 1000.0


class WriteStatus(Enum):
    """Outcome of writing one document"""
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class WriteResult:
    """Result of a RetryingWriter.write call"""
    status: WriteStatus
    document: Dict[str, Any] = field(repr=False)
    attempts: int

    @property
    def confirmed(self) -> bool:
        return self.status == WriteStatus.CONFIRMED

    @property
    def failed(self) -> bool:
        return self.status == WriteStatus.FAILED


class RetryingWriter:
    """
    Inserts one document into the target with bounded retry

    - Success returns CONFIRMED immediately
    - A throttled attempt is retried after a random backoff
    - Any other error is re-raised and aborts the run
    - After max_attempts throttled attempts the document goes to the ledger
    """

    def __init__(self, target, ledger: FailureLedger, max_attempts: int = 3,
                 backoff: Optional[BackoffPolicy] = None,
                 classifier: Optional[ThrottleClassifier] = None,
                 counters: Optional[RunCounters] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.target = target
        self.ledger = ledger
        self.max_attempts = max_attempts
        self.backoff = backoff or BackoffPolicy()
        self.classifier = classifier or create_throttle_classifier()
        self.counters = counters or RunCounters()
        self._sleep = sleep

    async def write(self, document: Dict[str, Any]) -> WriteResult:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.target.insert_one(document)
            except Exception as e:
                if not self.classifier.is_transient(e):
                    logger.error(f"❌ Insert failed with non-throttle error: {e}")
                    raise

                self.counters.throttled_writes += 1
                logger.debug(f"Insert throttled (attempt {attempt}/{self.max_attempts}): {e}")

                if attempt < self.max_attempts:
                    await self._sleep(self.backoff.next_delay())
                continue

            self.counters.documents_confirmed += 1
            return WriteResult(WriteStatus.CONFIRMED, document, attempt)

        self.ledger.append(document)
        logger.warning(f"⚠️ Document still throttled after {self.max_attempts} attempts; recorded as failed")
        return WriteResult(WriteStatus.FAILED, document, self.max_attempts)
