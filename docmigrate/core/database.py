"""
Document Store Client Framework
Async connection handling, batch cursors and single-document inserts for MongoDB-wire stores
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING

logger = logging.getLogger(__name__)


class DatabaseType(Enum):
    """Supported database types"""
    COSMOS_DB = "cosmos_db"
    MONGODB_ATLAS = "mongodb_atlas"
    MONGODB_LOCAL = "mongodb_local"


@dataclass
class DatabaseConfig:
    """Database connection configuration"""
    connection_string: str
    database_name: str
    collection_name: str
    db_type: DatabaseType
    max_pool_size: int = 100
    min_pool_size: int = 0
    max_idle_time_ms: int = 300000
    socket_timeout_ms: int = 30000
    connect_timeout_ms: int = 20000
    server_selection_timeout_ms: int = 30000
    retry_writes: Optional[bool] = None

    def client_options(self) -> Dict[str, Any]:
        """Keyword options passed to the motor client"""
        options = {
            "maxPoolSize": self.max_pool_size,
            "minPoolSize": self.min_pool_size,
            "maxIdleTimeMS": self.max_idle_time_ms,
            "socketTimeoutMS": self.socket_timeout_ms,
            "connectTimeoutMS": self.connect_timeout_ms,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
        }
        retry_writes = self.retry_writes
        if retry_writes is None:
            # Cosmos DB RU accounts reject retryable writes
            retry_writes = self.db_type != DatabaseType.COSMOS_DB
        options["retryWrites"] = retry_writes
        return options

    @property
    def namespace(self) -> str:
        return f"{self.database_name}.{self.collection_name}"


class BatchCursor:
    """
    Batch-at-a-time reader over a whole collection in ``_id`` order

    advance() pulls the next batch and exposes it on ``current``; it returns
    False once the collection is exhausted. The driver closes a cursor whose
    fetch fails, so after an error the next advance() reopens the query
    after the last ``_id`` read instead of reusing the dead cursor.
    """

    def __init__(self, collection, batch_size: int, no_cursor_timeout: bool = True):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._collection = collection
        self._cursor = None
        self.batch_size = batch_size
        self.no_cursor_timeout = no_cursor_timeout
        self.current: List[Dict[str, Any]] = []
        self.last_id: Any = None
        self.batches_fetched = 0
        self.opened = 0
        self.closed = False
        self._exhausted = False

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def _open(self):
        query: Dict[str, Any] = {}
        if self.last_id is not None:
            query = {"_id": {"$gt": self.last_id}}
        return self._collection.find(
            query,
            sort=[("_id", ASCENDING)],
            batch_size=self.batch_size,
            no_cursor_timeout=self.no_cursor_timeout
        )

    async def _release(self):
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            await cursor.close()

    async def advance(self) -> bool:
        if self._exhausted or self.closed:
            return False

        if self._cursor is None:
            if self.opened:
                logger.debug(f"Reopening source cursor after _id {self.last_id!r}")
            self._cursor = self._open()
            self.opened += 1

        try:
            documents = await self._cursor.to_list(length=self.batch_size)
        except Exception:
            # Documents to_list already buffered are lost with the cursor; last_id re-reads them
            await self._release()
            raise

        if not documents:
            self._exhausted = True
            self.current = []
            return False

        self.current = documents
        self.last_id = documents[-1]["_id"]
        self.batches_fetched += 1

        # Dead cursor: the server has nothing left, skip the empty round trip
        if not self._cursor.alive:
            self._exhausted = True
        return True

    async def close(self):
        self.closed = True
        await self._release()


class DocumentStoreClient:
    """
    Client for one collection on a MongoDB-wire document store

    Provides:
    - Connection management
    - Batch cursors over the whole collection
    - Single-document inserts
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.client: Optional[AsyncIOMotorClient] = None
        self.database = None
        self.collection = None
        self.is_connected = False

    async def connect(self) -> bool:
        """Connect to database and verify with a ping"""
        try:
            logger.info(f"Connecting to {self.config.db_type.value} ({self.config.namespace})...")

            self.client = AsyncIOMotorClient(
                self.config.connection_string,
                **self.config.client_options()
            )
            self.database = self.client[self.config.database_name]
            self.collection = self.database[self.config.collection_name]

            await self.client.admin.command('ping')

            self.is_connected = True
            logger.info(f"✅ Connected to {self.config.db_type.value}")
            return True

        except Exception as e:
            logger.error(f"❌ Failed to connect to {self.config.db_type.value}: {e}")
            return False

    async def disconnect(self):
        """Disconnect from database"""
        if self.client:
            self.client.close()
            self.is_connected = False
            logger.info(f"Disconnected from {self.config.db_type.value}")

    def _require_collection(self):
        if self.collection is None:
            raise RuntimeError(f"Not connected to {self.config.db_type.value}; call connect() first")
        return self.collection

    def open_batch_cursor(self, batch_size: int, no_cursor_timeout: bool = True) -> BatchCursor:
        """Open a batch cursor over the entire collection"""
        return BatchCursor(self._require_collection(), batch_size, no_cursor_timeout=no_cursor_timeout)

    async def insert_one(self, document: Dict[str, Any]):
        collection = self._require_collection()
        return await collection.insert_one(document)

    async def get_estimated_count(self) -> int:
        """Get estimated document count (metadata only, no collection scan)"""
        try:
            return await self._require_collection().estimated_document_count()
        except Exception as e:
            logger.error(f"Error getting estimated count: {e}")
            return 0


def create_database_client(config: DatabaseConfig) -> DocumentStoreClient:
    """Factory function to create a database client"""
    if not isinstance(config.db_type, DatabaseType):
        raise ValueError(f"Unsupported database type: {config.db_type}")
    return DocumentStoreClient(config)
