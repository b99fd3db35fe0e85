"""
Core store access and error classification
"""
from .database import (
    BatchCursor,
    DatabaseConfig,
    DatabaseType,
    DocumentStoreClient,
    create_database_client
)
from .throttling import (
    ErrorCodeClassifier,
    MessageSignatureClassifier,
    ThrottleClassifier,
    create_throttle_classifier,
    is_throttled
)
