"""
End-to-end migration scenarios through MigrationEngine with in-memory stores.
"""

import logging

import pytest
from bson import json_util

from docmigrate.migrations.engine import MigrationEngine, create_migration_engine
from docmigrate.migrations.stream import FetchRetriesExhausted
from tests.fakes import (
    FakeSource,
    FakeTarget,
    RecordingSleep,
    make_documents,
    throttle_documents,
    throttle_error,
)


def make_engine(config, source, target):
    return MigrationEngine(config, source_client=source, target_client=target, sleep=RecordingSleep())


@pytest.mark.asyncio
async def test_clean_run_without_failures(migrator_config, tmp_path):
    migrator_config.migration.batch_size = 4
    source = FakeSource(make_documents(10))
    target = FakeTarget()
    engine = make_engine(migrator_config, source, target)
    reported = []

    async def progress(total):
        reported.append(total)

    assert await engine.initialize()
    result = await engine.migrate(progress_callback=progress)

    assert source.collection.fetched_sizes == [4, 4, 2]
    assert reported == [4, 8, 10]
    assert result.documents_dispatched == 10
    assert result.documents_failed == 0
    assert result.failed_docs_path is None
    assert not result.has_failures
    assert not (tmp_path / "out" / "failed_documents.json").exists()
    assert result.summary_line() == "All 10 documents were exported"
    assert len(target.inserted) == 10


@pytest.mark.asyncio
async def test_throttled_document_lands_in_failure_file(migrator_config):
    migrator_config.retry.insert_retries = 2
    documents = make_documents(3)
    source = FakeSource(documents)
    target = FakeTarget(throttle_documents(2))
    engine = make_engine(migrator_config, source, target)

    result = await engine.migrate()

    assert result.documents_failed == 1
    assert target.attempts_for(documents[1]) == 2
    assert [doc["n"] for doc in target.inserted] == [1, 3]

    path = result.failed_docs_path
    assert path is not None and path.exists()
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert json_util.loads(lines[0])["n"] == 2
    assert result.summary_line() == f"Not all documents were exported, failed documents located @: {path}"


@pytest.mark.asyncio
async def test_every_source_document_accounted_for(migrator_config):
    migrator_config.migration.batch_size = 7
    migrator_config.retry.insert_retries = 3
    documents = make_documents(40)
    target = FakeTarget(throttle_documents(5, 13, 21, 34))
    engine = make_engine(migrator_config, FakeSource(documents), target)

    result = await engine.migrate()

    inserted = [id(doc) for doc in target.inserted]
    failed = [id(doc) for doc in engine.stream.ledger]
    # each document exactly once, on exactly one side
    assert len(inserted) == len(set(inserted))
    assert len(failed) == len(set(failed))
    assert set(inserted).isdisjoint(failed)
    assert set(inserted) | set(failed) == {id(doc) for doc in documents}
    assert result.documents_failed == 4
    assert result.counters["throttled_writes"] == 12


@pytest.mark.asyncio
async def test_fatal_error_still_flushes_ledger(migrator_config):
    migrator_config.migration.batch_size = 2
    migrator_config.retry.insert_retries = 1

    def behavior(document, attempt):
        if document["n"] == 1:
            raise throttle_error()
        if document["n"] == 4:
            raise RuntimeError("not authorized on orders to execute command")

    engine = make_engine(migrator_config, FakeSource(make_documents(6)), FakeTarget(behavior))

    with pytest.raises(RuntimeError, match="not authorized"):
        await engine.migrate()

    path = engine.sink.output_path
    assert path.exists()
    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json_util.loads(line)["n"] for line in lines] == [1]
    assert engine.get_stats()["state"] == "aborted"


@pytest.mark.asyncio
async def test_source_throttling_is_absorbed(migrator_config):
    migrator_config.migration.batch_size = 5
    source = FakeSource(make_documents(12), advance_errors=[throttle_error(), None, throttle_error()])
    target = FakeTarget()
    engine = make_engine(migrator_config, source, target)

    result = await engine.migrate()

    assert result.documents_dispatched == 12
    assert result.counters["throttled_fetches"] == 2
    assert len(target.inserted) == 12


@pytest.mark.asyncio
async def test_each_run_owns_its_ledger(migrator_config):
    migrator_config.retry.insert_retries = 1
    source = FakeSource(make_documents(3))
    engine = make_engine(migrator_config, source, FakeTarget(throttle_documents(1)))

    first = await engine.migrate()
    second = await engine.migrate()

    assert first.documents_failed == 1
    assert second.documents_failed == 1
    assert second.documents_dispatched == 3


@pytest.mark.asyncio
async def test_cleanup_disconnects_both_stores(migrator_config):
    source, target = FakeSource([]), FakeTarget()
    engine = make_engine(migrator_config, source, target)
    await engine.initialize()

    await engine.cleanup()

    assert not source.connected
    assert not target.connected


def test_factory_builds_clients_from_config(migrator_config):
    engine = create_migration_engine(migrator_config)

    assert engine.source_client.config.namespace == "orders.serviceorders"
    assert engine.target_client.config.connection_string == "mongodb://target.example:27017"
    assert engine.get_stats() == {}


@pytest.mark.asyncio
async def test_throttled_reads_lose_no_documents(migrator_config):
    migrator_config.migration.batch_size = 6
    migrator_config.retry.insert_retries = 2
    documents = make_documents(30)
    errors = [None, throttle_error(), None, None, throttle_error(), throttle_error()]
    source = FakeSource(documents, advance_errors=errors)
    target = FakeTarget(throttle_documents(9, 22))
    engine = make_engine(migrator_config, source, target)

    result = await engine.migrate()

    inserted = [doc["n"] for doc in target.inserted]
    failed = [doc["n"] for doc in engine.stream.ledger]
    assert sorted(inserted + failed) == list(range(1, 31))
    assert failed == [9, 22]
    assert result.documents_dispatched == 30
    assert result.counters["throttled_fetches"] == 3
    assert result.has_failures


@pytest.mark.asyncio
async def test_source_that_stays_throttled_hits_fetch_cap(migrator_config):
    migrator_config.retry.max_fetch_retries = 3
    source = FakeSource(make_documents(10), advance_errors=[throttle_error() for _ in range(10)])
    engine = make_engine(migrator_config, source, FakeTarget())

    with pytest.raises(FetchRetriesExhausted):
        await engine.migrate()

    # every retry went back to the server on a fresh cursor
    assert len(source.collection.to_list_calls) == 4
    assert engine.get_stats()["state"] == "aborted"
    assert engine.get_stats()["documents_dispatched"] == 0


@pytest.mark.asyncio
async def test_unwritable_failure_file_keeps_original_error(migrator_config, tmp_path, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    migrator_config.migration.failed_docs_path = str(blocker / "failed_documents.json")
    migrator_config.migration.batch_size = 2
    migrator_config.retry.insert_retries = 1

    def behavior(document, attempt):
        if document["n"] == 1:
            raise throttle_error()
        if document["n"] == 3:
            raise RuntimeError("not authorized on orders to execute command")

    engine = make_engine(migrator_config, FakeSource(make_documents(4)), FakeTarget(behavior))

    with caplog.at_level(logging.ERROR, logger="docmigrate.migrations.engine"):
        with pytest.raises(RuntimeError, match="not authorized"):
            await engine.migrate()

    assert "Could not save 1 failed documents" in caplog.text
