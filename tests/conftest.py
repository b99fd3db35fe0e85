"""
Pytest configuration and fixtures for docmigrate.
"""

import asyncio
import os
import random
import sys

import pytest

from docmigrate import BackoffPolicy, FailureLedger, RunCounters
from docmigrate.config.manager import (
    DatabaseSettings,
    MigrationSettings,
    MigratorConfig,
    RetrySettings,
)
from docmigrate.core.database import DatabaseType
from tests.fakes import RecordingSleep

if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


@pytest.fixture
def ledger():
    return FailureLedger()


@pytest.fixture
def counters():
    return RunCounters()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def backoff():
    """Default wait bounds with a seeded generator for reproducible delays."""
    return BackoffPolicy(min_wait_ms=1500, max_wait_ms=3000, rng=random.Random(1234))


@pytest.fixture
def migrator_config(tmp_path):
    """Complete configuration pointing the failed-docs file into tmp_path."""
    return MigratorConfig(
        source_database=DatabaseSettings(
            connection_string="mongodb://source.example:10255/?ssl=true",
            database_name="orders",
            collection_name="serviceorders",
            db_type=DatabaseType.COSMOS_DB,
        ),
        target_database=DatabaseSettings(
            connection_string="mongodb://target.example:27017",
            database_name="orders",
            collection_name="serviceorders",
            db_type=DatabaseType.MONGODB_ATLAS,
        ),
        retry=RetrySettings(insert_retries=3, min_wait_ms=1500, max_wait_ms=3000),
        migration=MigrationSettings(
            batch_size=4,
            failed_docs_path=str(tmp_path / "out" / "failed_documents.json"),
        ),
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every MIGRATOR_* variable so tests start from defaults."""
    for name in list(os.environ):
        if name.startswith("MIGRATOR_"):
            monkeypatch.delenv(name, raising=False)
    return monkeypatch
