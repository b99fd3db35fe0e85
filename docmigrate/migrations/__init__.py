"""
Migration Framework
"""
from .ledger import FailureLedger, RunCounters
from .writer import BackoffPolicy, RetryingWriter, WriteResult, WriteStatus
from .dispatcher import BatchDispatcher
from .stream import FetchRetriesExhausted, SourceStream, StreamState
from .sink import FailedDocumentSink
from .engine import MigrationEngine, MigrationResult, create_migration_engine
