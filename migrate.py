#!/usr/bin/env python3
"""
Document Migration Script
Copies a whole collection from the source store to the target store, riding out throttling
"""
import asyncio
import argparse
import logging
import sys
from typing import List, Optional

from docmigrate import (
    ConfigManager,
    MigratorConfig,
    ProgressReporter,
    create_migration_engine
)

logger = logging.getLogger("docmigrate.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Throttle-tolerant document migration')
    parser.add_argument('--config', '-c', default=None,
                        help='Configuration file (.env, .json, .yml/.yaml)')
    parser.add_argument('--batch-size', '-b', type=int,
                        help='Documents fetched and written per batch')
    parser.add_argument('--insert-retries', '-r', type=int,
                        help='Insert attempts per document before it is recorded as failed')
    parser.add_argument('--failed-docs-path', '-o',
                        help='Where to write documents that could not be migrated')
    parser.add_argument('--max-fetch-retries', type=int,
                        help='Cap on consecutive throttled source reads (default: unbounded)')
    parser.add_argument('--max-concurrency', type=int,
                        help='Cap on in-flight inserts per batch (default: batch size)')
    parser.add_argument('--no-progress', action='store_true',
                        help='Disable the progress bar')
    parser.add_argument('--check-connections', action='store_true',
                        help='Connect to both stores and exit')
    parser.add_argument('--log-file', default=None,
                        help='Also write logs to this file')
    return parser


def setup_logging(level: str, log_file: Optional[str] = None):
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def apply_overrides(config: MigratorConfig, args: argparse.Namespace):
    """Command line values win over file and environment settings"""
    if args.batch_size is not None:
        config.migration.batch_size = args.batch_size
    if args.max_concurrency is not None:
        config.migration.max_concurrency = args.max_concurrency
    if args.failed_docs_path:
        config.migration.failed_docs_path = args.failed_docs_path
    if args.insert_retries is not None:
        config.retry.insert_retries = args.insert_retries
    if args.max_fetch_retries is not None:
        config.retry.max_fetch_retries = args.max_fetch_retries


async def main(argv: Optional[List[str]] = None) -> int:
    """Main function for document migration"""
    args = build_parser().parse_args(argv)
    setup_logging("INFO", args.log_file)

    try:
        config_manager = ConfigManager("MIGRATOR")
        config = config_manager.load_config(args.config)
        apply_overrides(config, args)
        config_manager.validate(config)
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"❌ {e}")
        return 1

    logging.getLogger().setLevel(getattr(logging, config.log_level, logging.INFO))
    logger.info("🚀 Starting document migration")
    logger.info(f"Source: {config.source_database.database_name}.{config.source_database.collection_name}")
    logger.info(f"Target: {config.target_database.database_name}.{config.target_database.collection_name}")
    logger.info(f"Batch size: {config.migration.batch_size}")
    logger.info(f"Insert retries: {config.retry.insert_retries}")

    engine = create_migration_engine(config)
    reporter = None
    try:
        if not await engine.initialize():
            logger.error("Failed to initialize migration engine")
            return 1

        if args.check_connections:
            logger.info("✅ Both stores are reachable")
            return 0

        total_docs = None
        if not args.no_progress:
            total_docs = await engine.get_source_count()
            logger.info(f"📊 Estimated documents in source: {total_docs:,}")
        reporter = ProgressReporter(total=total_docs, enabled=not args.no_progress)

        result = await engine.migrate(progress_callback=reporter)
        reporter.close()

        logger.info("🎉 Migration completed!")
        logger.info(f"   • Documents dispatched: {result.documents_dispatched:,}")
        logger.info(f"   • Documents failed: {result.documents_failed:,}")
        logger.info(f"   • Average rate: {result.rate:.0f} docs/s")
        logger.info(f"   • Throttled inserts: {result.counters.get('throttled_writes', 0):,}")
        logger.info(f"   • Throttled reads: {result.counters.get('throttled_fetches', 0):,}")
        print(result.summary_line())
        return 0

    except Exception as e:
        logger.exception(f"❌ Migration failed: {e}")
        return 1

    finally:
        if reporter is not None:
            reporter.close()
        await engine.cleanup()


def run():
    """Console script entry point"""
    try:
        import uvloop
        runner = uvloop.run
    except ImportError:
        runner = asyncio.run  # uvloop not available, using default event loop

    sys.exit(runner(main()))


if __name__ == "__main__":
    run()
