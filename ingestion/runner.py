# ============================================================================
# File: ingestion/runner.py
# Description: Migration orchestrator (sites x record types)
# ============================================================================
"""
Migration Runner - Orchestrates the replacement of every collection.

This module drives a run through its states:
- Connecting: engine creation and connectivity probe (the only fatal step)
- Running: every site in the configured order, every record type in
  declaration order, each pair loaded independently
- Completed: summary of per-pair source/inserted counts and elapsed time
- Aborted: destination unreachable, nothing was loaded

Missing site directories, missing archives, unavailable bindings and
rejected records are recovered locally and never abort the run.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from uuid import UUID
import asyncio
import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from core.config import Settings, settings as default_settings
from core.database import create_engine, create_session_maker, verify_connection
from core.exceptions import ConfigurationError, DatabaseConnectionError
from core.logging import ErrorLog
from ingestion.base import DocumentStore
from ingestion.bindings import BindingRegistry, StoreBinding
from ingestion.extractors.dbf_extractor import DbfArchive
from ingestion.loaders.batch_loader import BatchLoader, ChunkFailurePolicy
from ingestion.progress import create_progress_reporter
from models.base import Base, ETLStatus, RecordType, RunState
from models.migration_run import ImportOutcomeRecord, MigrationRun
from schemas.migration import ImportOutcome, RunSummary, SkippedEntry

logger = logging.getLogger(__name__)


def format_elapsed(seconds: float) -> str:
    """Format a duration as 'Xh Ym Zs'"""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}h {minutes}m {secs}s"


@dataclass
class RunContext:
    """State of one run, passed explicitly to the components that need it"""
    error_log: ErrorLog
    summary: RunSummary = field(default_factory=RunSummary)
    started_monotonic: float = field(default_factory=time.monotonic)

    @property
    def run_id(self) -> UUID:
        return self.summary.run_id

    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_monotonic

    def format_elapsed(self) -> str:
        return format_elapsed(self.elapsed_seconds())

    def skip(self, entry: SkippedEntry) -> None:
        self.summary.skipped.append(entry)


@dataclass(frozen=True)
class WorkItem:
    """A (site, record type) pair with a usable binding"""
    site: str
    record_type: RecordType
    binding: StoreBinding
    archive_path: Path

    @property
    def label(self) -> str:
        return f"{self.site}/{self.record_type.value}"


def bind_store(binding: StoreBinding, db_session: AsyncSession) -> DocumentStore:
    return binding.bind(db_session)


class MigrationRunner:
    """
    Migration orchestrator.

    Responsibilities:
    - Connect once and hold the engine for the whole run
    - Plan the work items in a fixed, deterministic order
    - Load each pair in its own session, sequentially or on a bounded pool
    - Keep every failure below connection level local to its pair
    - Report elapsed time after each pair and a final summary
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        registry: Optional[BindingRegistry] = None,
        error_log: Optional[ErrorLog] = None,
        engine_factory: Callable[[str], AsyncEngine] = create_engine,
        store_factory: Callable[[StoreBinding, AsyncSession], DocumentStore] = bind_store,
        progress_enabled: Optional[bool] = None
    ):
        self.config = config or default_settings
        self.error_log = error_log or ErrorLog(self.config.ERROR_LOG_PATH)
        self.registry = registry
        self.engine_factory = engine_factory
        self.store_factory = store_factory
        self.progress_enabled = (
            progress_enabled if progress_enabled is not None else self.config.PROGRESS_ENABLED
        )

    async def run(
        self,
        sites: Optional[Sequence[str]] = None,
        record_types: Optional[Sequence[RecordType]] = None
    ) -> RunSummary:
        """
        Run the migration.

        Args:
            sites: Sites to process (default: configured SITES, in that order)
            record_types: Record types to process; always run in declaration order

        Returns:
            RunSummary in state COMPLETED, or ABORTED with no outcomes when the
            destination could not be reached

        Raises:
            ConfigurationError: If no connection string is configured; raised
                before any connection attempt or archive access
        """
        database_url = self.config.database_url
        if not database_url:
            raise ConfigurationError(
                "No destination connection string configured",
                context={"settings": "DATABASE_URL, DATABASE_URL_DEV"}
            )

        context = RunContext(error_log=self.error_log)
        summary = context.summary
        sites = list(sites) if sites else list(self.config.SITES)
        selected = set(record_types) if record_types else set(RecordType)
        record_types = [rt for rt in RecordType if rt in selected]

        # --------------------------------------------------
        # CONNECTING
        # --------------------------------------------------
        logger.info(f"Migration run {context.run_id}: connecting to destination")
        engine = None
        try:
            try:
                engine = self.engine_factory(database_url)
            except Exception as e:
                raise DatabaseConnectionError(
                    "Failed to create database engine",
                    original_exception=e
                )
            await verify_connection(engine)

        except DatabaseConnectionError as e:
            logger.critical(f"Migration aborted: {e}")
            self.error_log.record(f"Migration aborted: {e}")
            if engine is not None:
                await engine.dispose()
            return self._finalize(context, RunState.ABORTED)

        # --------------------------------------------------
        # RUNNING
        # --------------------------------------------------
        summary.state = RunState.RUNNING
        try:
            registry = self.registry
            if registry is None:
                registry = BindingRegistry.scan(
                    self.config.BINDINGS_DIR, error_log=self.error_log, sites=sites
                )

            session_maker = create_session_maker(engine)
            loader = self._build_loader(context)
            work = self._plan(context, registry, sites, record_types)

            logger.info(
                f"{len(work)} pairs to load, {len(summary.skipped)} skipped, "
                f"up to {self._concurrency()} at a time"
            )

            summary.outcomes.extend(await self._execute(context, session_maker, loader, work))
            self._finalize(context, RunState.COMPLETED)
            self._log_summary(context)

            if self.config.RECORD_RUN_HISTORY:
                await self._record_history(context, session_maker)
        finally:
            await engine.dispose()

        return summary

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _plan(
        self,
        context: RunContext,
        registry: BindingRegistry,
        sites: List[str],
        record_types: List[RecordType]
    ) -> List[WorkItem]:
        archive_root = Path(self.config.ARCHIVE_ROOT)
        work = []

        for site in sites:
            site_dir = archive_root / site
            if not site_dir.is_dir():
                message = f"{site}: site directory {site_dir} not found, site skipped"
                logger.warning(message)
                context.error_log.record(message)
                context.skip(SkippedEntry(site=site, reason=f"site directory {site_dir} not found"))
                continue

            for record_type in record_types:
                binding = registry.resolve(site, record_type)
                if binding is None:
                    reason = registry.unavailable_reason(site, record_type) or "no binding module"
                    context.skip(SkippedEntry(site=site, record_type=record_type, reason=reason))
                    continue

                work.append(WorkItem(
                    site=site,
                    record_type=record_type,
                    binding=binding,
                    archive_path=site_dir / record_type.archive_filename
                ))

        return work

    def _build_loader(self, context: RunContext) -> BatchLoader:
        progress_factory = partial(create_progress_reporter, enabled=self.progress_enabled)
        archive_factory = partial(
            DbfArchive,
            encoding=self.config.ARCHIVE_ENCODING,
            encoding_errors=self.config.ARCHIVE_ENCODING_ERRORS
        )
        return BatchLoader(
            error_log=context.error_log,
            chunk_size=self.config.CHUNK_SIZE,
            failure_policy=ChunkFailurePolicy(self.config.CHUNK_FAILURE_POLICY),
            max_recorded_errors=self.config.MAX_RECORDED_ERRORS,
            archive_factory=archive_factory,
            progress_factory=progress_factory
        )

    def _concurrency(self) -> int:
        return max(1, self.config.MAX_CONCURRENT_LOADS)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(
        self,
        context: RunContext,
        session_maker,
        loader: BatchLoader,
        work: List[WorkItem]
    ) -> List[ImportOutcome]:
        """Outcomes are returned in work-item order whatever the concurrency"""
        limit = self._concurrency()

        if limit == 1:
            outcomes = []
            for item in work:
                outcomes.append(await self._load_pair(context, session_maker, loader, item))
            return outcomes

        semaphore = asyncio.Semaphore(limit)

        async def bounded(item: WorkItem) -> ImportOutcome:
            async with semaphore:
                return await self._load_pair(context, session_maker, loader, item)

        return list(await asyncio.gather(*(bounded(item) for item in work)))

    async def _load_pair(
        self,
        context: RunContext,
        session_maker,
        loader: BatchLoader,
        item: WorkItem
    ) -> ImportOutcome:
        logger.info(f"{item.label}: loading {item.archive_path} into {item.binding.collection}")

        try:
            async with session_maker() as session:
                store = self.store_factory(item.binding, session)
                outcome = await loader.load(store, item.archive_path, item.record_type, item.site)

        except Exception as e:
            logger.exception(f"{item.label}: unexpected error during load")
            message = f"{item.label}: unexpected error: {type(e).__name__}: {e}"
            context.error_log.record(message)
            outcome = ImportOutcome(
                site=item.site,
                record_type=item.record_type,
                collection=item.binding.collection,
                archive_path=str(item.archive_path),
                status=ETLStatus.FAILED,
                errors=[message]
            )

        logger.info(f"Elapsed since start: {context.format_elapsed()}")
        return outcome

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _finalize(self, context: RunContext, state: RunState) -> RunSummary:
        summary = context.summary
        summary.state = state
        summary.completed_at = datetime.now(timezone.utc)
        summary.elapsed_seconds = round(context.elapsed_seconds(), 3)
        return summary

    def _log_summary(self, context: RunContext) -> None:
        summary = context.summary

        for outcome in summary.outcomes:
            line = (
                f"{outcome.label}: {outcome.inserted_count}/{outcome.source_count} inserted "
                f"[{outcome.status.value}]"
            )
            if outcome.missing_count:
                logger.warning(f"{line}, {outcome.missing_count} records missing")
            else:
                logger.info(line)

        for entry in summary.skipped:
            logger.info(f"{entry.label}: skipped ({entry.reason})")

        logger.info(
            f"Migration complete for {len(summary.sites)} sites: "
            f"{summary.total_inserted_count}/{summary.total_source_count} records inserted, "
            f"total elapsed {format_elapsed(summary.elapsed_seconds)}"
        )

    async def _record_history(self, context: RunContext, session_maker) -> None:
        """Persist the summary to the audit tables; failure is not fatal"""
        summary = context.summary
        run = MigrationRun(
            run_id=summary.run_id,
            state=summary.state,
            started_at=summary.started_at.replace(tzinfo=None),
            completed_at=summary.completed_at.replace(tzinfo=None) if summary.completed_at else None,
            duration_seconds=summary.elapsed_seconds,
            pairs_loaded=sum(1 for o in summary.outcomes if o.status != ETLStatus.SKIPPED),
            pairs_skipped=len(summary.skipped) + sum(1 for o in summary.outcomes if o.status == ETLStatus.SKIPPED),
            records_source=summary.total_source_count,
            records_inserted=summary.total_inserted_count,
            skipped=[entry.model_dump(mode="json") for entry in summary.skipped],
            outcomes=[
                ImportOutcomeRecord(
                    site=o.site,
                    record_type=o.record_type,
                    collection=o.collection,
                    status=o.status,
                    source_count=o.source_count,
                    inserted_count=o.inserted_count,
                    failed_count=o.failed_count,
                    deleted_count=o.deleted_count,
                    duration_seconds=o.duration_seconds,
                    errors=o.errors
                )
                for o in summary.outcomes
            ]
        )

        try:
            async with session_maker() as session:
                conn = await session.connection()
                await conn.run_sync(
                    Base.metadata.create_all,
                    tables=[MigrationRun.__table__, ImportOutcomeRecord.__table__]
                )
                session.add(run)
                await session.commit()
        except SQLAlchemyError as e:
            message = f"Run {summary.run_id}: failed to record run history: {type(e).__name__}: {e}"
            logger.error(message)
            context.error_log.record(message)
            return

        logger.info(f"Run {summary.run_id} recorded in migration history")
