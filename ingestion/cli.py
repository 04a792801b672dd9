"""
Command line entry point for the migration
"""

from typing import List, Optional
import argparse
import asyncio
import logging

from core.config import Settings, settings
from core.exceptions import ConfigurationError
from core.logging import ErrorLog, setup_logging
from ingestion.loaders.batch_loader import ChunkFailurePolicy
from ingestion.runner import MigrationRunner
from models.base import RecordType, RunState

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONNECTION_FAILED = 1
EXIT_MISSING_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="legacy-migrate",
        description="Replace document collections with the contents of legacy DBF archives."
    )
    parser.add_argument(
        "--site",
        action="append",
        dest="sites",
        metavar="SITE",
        help="Site to migrate (repeatable, default: every configured site)"
    )
    parser.add_argument(
        "--record-type",
        action="append",
        dest="record_types",
        choices=[rt.value for rt in RecordType],
        help="Record type to migrate (repeatable, default: all)"
    )
    parser.add_argument("--chunk-size", type=int, help="Records per insert chunk")
    parser.add_argument("--concurrency", type=int, help="Pairs loaded at the same time")
    parser.add_argument(
        "--failure-policy",
        choices=[policy.value for policy in ChunkFailurePolicy],
        help="Handling of a rejected chunk"
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    return parser


def apply_overrides(config: Settings, args: argparse.Namespace) -> Settings:
    """Settings with the command line options applied on top"""
    overrides = {}
    if args.chunk_size is not None:
        overrides["CHUNK_SIZE"] = args.chunk_size
    if args.concurrency is not None:
        overrides["MAX_CONCURRENT_LOADS"] = args.concurrency
    if args.failure_policy is not None:
        overrides["CHUNK_FAILURE_POLICY"] = args.failure_policy
    if args.no_progress:
        overrides["PROGRESS_ENABLED"] = False
    return config.model_copy(update=overrides) if overrides else config


def validate(config: Settings) -> None:
    """
    Raises:
        ConfigurationError: If the run cannot start with this configuration
    """
    if not config.database_url:
        raise ConfigurationError(
            "DATABASE_URL is not set (nor DATABASE_URL_DEV) in the environment or config/config.env"
        )
    if config.CHUNK_SIZE < 1:
        raise ConfigurationError("CHUNK_SIZE must be at least 1", context={"CHUNK_SIZE": config.CHUNK_SIZE})
    try:
        ChunkFailurePolicy(config.CHUNK_FAILURE_POLICY)
    except ValueError as e:
        raise ConfigurationError(
            "Unknown CHUNK_FAILURE_POLICY",
            context={"CHUNK_FAILURE_POLICY": config.CHUNK_FAILURE_POLICY},
            original_exception=e
        )


def main(argv: Optional[List[str]] = None, config: Optional[Settings] = None) -> int:
    """Run the migration and return the process exit code"""
    args = build_parser().parse_args(argv)
    setup_logging()

    config = apply_overrides(config or settings, args)
    error_log = ErrorLog(config.ERROR_LOG_PATH)

    try:
        validate(config)
    except ConfigurationError as e:
        logger.critical(e.message)
        error_log.record(f"Migration not started: {e.message}")
        return EXIT_MISSING_CONFIG

    record_types = [RecordType(value) for value in args.record_types] if args.record_types else None
    runner = MigrationRunner(config=config, error_log=error_log)
    summary = asyncio.run(runner.run(sites=args.sites, record_types=record_types))

    if summary.state == RunState.ABORTED:
        return EXIT_CONNECTION_FAILED
    return EXIT_OK
