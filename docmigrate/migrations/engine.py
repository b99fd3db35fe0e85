"""
Migration Framework
Wires configuration, store clients, the streaming core and the failed-document sink
"""
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..config.manager import MigratorConfig
from ..core.database import DocumentStoreClient, create_database_client
from ..core.throttling import create_throttle_classifier
from .dispatcher import BatchDispatcher, ProgressCallback
from .ledger import FailureLedger, RunCounters
from .sink import FailedDocumentSink
from .stream import SourceStream
from .writer import BackoffPolicy, RetryingWriter

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Outcome of a completed migration"""
    documents_dispatched: int
    documents_failed: int
    failed_docs_path: Optional[Path]
    elapsed_seconds: float
    counters: Dict[str, int] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return self.documents_failed > 0

    @property
    def rate(self) -> float:
        return self.documents_dispatched / self.elapsed_seconds if self.elapsed_seconds > 0 else 0

    def summary_line(self) -> str:
        if self.has_failures:
            return f"Not all documents were exported, failed documents located @: {self.failed_docs_path}"
        return f"All {self.documents_dispatched:,} documents were exported"


class MigrationEngine:
    """
    Migration engine

    Each migrate() call owns a fresh ledger and counters. Whatever the
    outcome, the ledger is handed to the sink before migrate() returns
    or re-raises.
    """

    def __init__(self, config: MigratorConfig,
                 source_client: Optional[DocumentStoreClient] = None,
                 target_client: Optional[DocumentStoreClient] = None,
                 sleep=None):
        self.config = config
        if source_client is None:
            source_client = create_database_client(config.source_database.to_database_config())
        if target_client is None:
            target_client = create_database_client(config.target_database.to_database_config())
        self.source_client = source_client
        self.target_client = target_client
        self.classifier = create_throttle_classifier(config.retry.throttle_signatures)
        self.sink = FailedDocumentSink(config.migration.failed_docs_path)
        self._sleep = sleep
        self.stream: Optional[SourceStream] = None

    async def initialize(self) -> bool:
        """Connect to both stores"""
        if not await self.source_client.connect():
            return False
        if not await self.target_client.connect():
            return False
        logger.info("Migration engine initialized successfully")
        return True

    def _build_stream(self, ledger: FailureLedger, counters: RunCounters,
                      progress_callback: Optional[ProgressCallback]) -> SourceStream:
        retry = self.config.retry
        backoff = BackoffPolicy(min_wait_ms=retry.min_wait_ms, max_wait_ms=retry.max_wait_ms)
        sleep_kwargs = {"sleep": self._sleep} if self._sleep else {}

        writer = RetryingWriter(
            self.target_client,
            ledger,
            max_attempts=retry.insert_retries,
            backoff=backoff,
            classifier=self.classifier,
            counters=counters,
            **sleep_kwargs
        )
        dispatcher = BatchDispatcher(
            writer,
            counters,
            progress_callback=progress_callback,
            max_concurrency=self.config.migration.max_concurrency
        )
        return SourceStream(
            self.source_client,
            dispatcher,
            ledger,
            batch_size=self.config.migration.batch_size,
            backoff=backoff,
            classifier=self.classifier,
            counters=counters,
            no_cursor_timeout=self.config.migration.no_cursor_timeout,
            max_fetch_retries=retry.max_fetch_retries,
            **sleep_kwargs
        )

    async def migrate(self, progress_callback: Optional[ProgressCallback] = None) -> MigrationResult:
        """Copy every source document to the target"""
        source = self.config.source_database
        target = self.config.target_database
        logger.info(
            f"Starting migration {source.database_name}.{source.collection_name} → "
            f"{target.database_name}.{target.collection_name} "
            f"(batch size {self.config.migration.batch_size}, insert retries {self.config.retry.insert_retries})"
        )

        ledger = FailureLedger()
        counters = RunCounters()
        self.stream = self._build_stream(ledger, counters, progress_callback)

        start_time = time.time()
        try:
            await self.stream.run()
        except BaseException:
            try:
                failed_path = self.sink.write(ledger)
            except Exception as sink_error:
                logger.error(
                    f"❌ Could not save {len(ledger):,} failed documents to {self.sink.output_path}: {sink_error}"
                )
            else:
                if failed_path:
                    logger.error(
                        f"Migration aborted; {len(ledger):,} failed documents saved @: {failed_path}"
                    )
            raise

        failed_path = self.sink.write(ledger)
        result = MigrationResult(
            documents_dispatched=counters.documents_dispatched,
            documents_failed=len(ledger),
            failed_docs_path=failed_path,
            elapsed_seconds=time.time() - start_time,
            counters=counters.to_dict()
        )

        if result.has_failures:
            logger.warning(result.summary_line())
        else:
            logger.info(result.summary_line())
        return result

    async def get_source_count(self) -> int:
        return await self.source_client.get_estimated_count()

    def get_stats(self) -> Dict[str, Any]:
        """Counters of the current or last run"""
        if self.stream is None:
            return {}
        stats = self.stream.counters.to_dict()
        stats["state"] = self.stream.state.value
        stats["documents_failed"] = len(self.stream.ledger)
        return stats

    async def cleanup(self):
        """Clean up resources"""
        await self.source_client.disconnect()
        await self.target_client.disconnect()
        logger.info("Migration engine cleaned up")


def create_migration_engine(config: MigratorConfig) -> MigrationEngine:
    """Factory function to create migration engine"""
    return MigrationEngine(config)
