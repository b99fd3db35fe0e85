"""
Unit tests for the migrate.py command line wrapper.
"""

import pytest

import migrate
from docmigrate.config.manager import MigratorConfig


def test_overrides_apply_to_config():
    args = migrate.build_parser().parse_args([
        "--batch-size", "20",
        "--insert-retries", "6",
        "--failed-docs-path", "out/failed.json",
        "--max-fetch-retries", "4",
        "--max-concurrency", "8",
    ])
    config = MigratorConfig()

    migrate.apply_overrides(config, args)

    assert config.migration.batch_size == 20
    assert config.retry.insert_retries == 6
    assert config.migration.failed_docs_path == "out/failed.json"
    assert config.retry.max_fetch_retries == 4
    assert config.migration.max_concurrency == 8


def test_no_overrides_keeps_config():
    args = migrate.build_parser().parse_args([])
    config = MigratorConfig()

    migrate.apply_overrides(config, args)

    assert config == MigratorConfig()


@pytest.mark.asyncio
async def test_invalid_configuration_exits_with_error(clean_env, tmp_path):
    clean_env.chdir(tmp_path)

    assert await migrate.main([]) == 1


@pytest.mark.asyncio
async def test_invalid_override_exits_with_error(clean_env, tmp_path):
    clean_env.chdir(tmp_path)
    clean_env.setenv("MIGRATOR_SOURCE_DB_CONNECTION_STRING", "mongodb://s")
    clean_env.setenv("MIGRATOR_SOURCE_DB_NAME", "a")
    clean_env.setenv("MIGRATOR_SOURCE_DB_COLLECTION", "b")
    clean_env.setenv("MIGRATOR_TARGET_DB_CONNECTION_STRING", "mongodb://t")
    clean_env.setenv("MIGRATOR_TARGET_DB_NAME", "c")
    clean_env.setenv("MIGRATOR_TARGET_DB_COLLECTION", "d")

    assert await migrate.main(["--batch-size", "0"]) == 1


def test_run_exits_with_main_status(monkeypatch):
    async def finished_with_error(argv=None):
        return 3

    monkeypatch.setattr(migrate, "main", finished_with_error)

    with pytest.raises(SystemExit) as excinfo:
        migrate.run()

    assert excinfo.value.code == 3
