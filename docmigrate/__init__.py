"""
docmigrate
Throttle-tolerant bulk migration between MongoDB-wire document stores
"""

__version__ = "1.0.0"

# Core components
from .core.database import (
    BatchCursor,
    DatabaseConfig,
    DatabaseType,
    DocumentStoreClient,
    create_database_client
)
from .core.throttling import (
    ErrorCodeClassifier,
    MessageSignatureClassifier,
    ThrottleClassifier,
    create_throttle_classifier,
    is_throttled
)

# Configuration management
from .config.manager import (
    ConfigManager,
    DatabaseSettings,
    MigrationSettings,
    MigratorConfig,
    RetrySettings
)

# Migration
from .migrations.ledger import FailureLedger, RunCounters
from .migrations.writer import BackoffPolicy, RetryingWriter, WriteResult, WriteStatus
from .migrations.dispatcher import BatchDispatcher
from .migrations.stream import FetchRetriesExhausted, SourceStream, StreamState
from .migrations.sink import FailedDocumentSink
from .migrations.engine import MigrationEngine, MigrationResult, create_migration_engine

# Monitoring
from .monitoring.progress import ProgressReporter

__all__ = [
    # Core
    "BatchCursor",
    "DatabaseConfig",
    "DatabaseType",
    "DocumentStoreClient",
    "create_database_client",
    "ErrorCodeClassifier",
    "MessageSignatureClassifier",
    "ThrottleClassifier",
    "create_throttle_classifier",
    "is_throttled",

    # Configuration
    "ConfigManager",
    "DatabaseSettings",
    "MigrationSettings",
    "MigratorConfig",
    "RetrySettings",

    # Migration
    "FailureLedger",
    "RunCounters",
    "BackoffPolicy",
    "RetryingWriter",
    "WriteResult",
    "WriteStatus",
    "BatchDispatcher",
    "FetchRetriesExhausted",
    "SourceStream",
    "StreamState",
    "FailedDocumentSink",
    "MigrationEngine",
    "MigrationResult",
    "create_migration_engine",

    # Monitoring
    "ProgressReporter",
]
