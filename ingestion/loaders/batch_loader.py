"""
Replace a collection with the contents of one legacy archive, in chunks
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
import asyncio
import enum
import logging
import time

from ingestion.base import DocumentStore
from ingestion.extractors.dbf_extractor import DbfArchive
from ingestion.progress import NullProgressReporter, ProgressReporter
from ingestion.transformers.sanitizer import sanitize_record
from core.exceptions import ArchiveReadError, ChunkWriteError, DatabaseError, ETLException
from core.logging import ErrorLog
from models.base import ETLStatus, RecordType
from schemas.migration import ImportOutcome

logger = logging.getLogger(__name__)


class ChunkFailurePolicy(str, enum.Enum):
    """What to do with a chunk the destination rejected"""
    RECORD = "record"    # retry each record alone, skip the ones that fail
    SPLIT = "split"      # halve the chunk until the failing records are isolated
    ABANDON = "abandon"  # count the whole chunk as not inserted


class BatchLoader:
    """
    Load one archive into one collection with full replace semantics.

    Pipeline for a (site, record type) pair:
    1. Missing archive: report and leave the destination untouched
    2. Open the archive and read its record count
    3. Create the collection if needed, delete all its documents
    4. Read, sanitize and insert records chunk by chunk
    5. Report progress after every chunk

    Rejected records never stop the load: the chunk failure policy decides
    how much of a rejected chunk is retried, and every record that stays
    rejected is counted and logged.
    """

    def __init__(
        self,
        error_log: ErrorLog,
        chunk_size: int = 1000,
        failure_policy: ChunkFailurePolicy = ChunkFailurePolicy.RECORD,
        max_recorded_errors: int = 100,
        archive_factory: Callable[[Path], DbfArchive] = DbfArchive,
        progress_factory: Optional[Callable[[str], ProgressReporter]] = None
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

        self.error_log = error_log
        self.chunk_size = chunk_size
        self.failure_policy = ChunkFailurePolicy(failure_policy)
        self.max_recorded_errors = max_recorded_errors
        self.archive_factory = archive_factory
        self.progress_factory = progress_factory or (lambda label: NullProgressReporter())

    async def load(
        self,
        store: DocumentStore,
        archive_path: Union[str, Path],
        record_type: RecordType,
        site: str
    ) -> ImportOutcome:
        """
        Replace the documents of `store` with the records of `archive_path`.

        Returns:
            ImportOutcome with source, inserted, failed and deleted counts.
            Archive and database failures are reported in the outcome
            (status FAILED) instead of being raised.
        """
        archive_path = Path(archive_path)
        label = f"{site}/{record_type.value}"
        started = time.monotonic()

        outcome = ImportOutcome(
            site=site,
            record_type=record_type,
            collection=store.name,
            archive_path=str(archive_path),
            status=ETLStatus.RUNNING
        )

        if not archive_path.exists():
            self._report(outcome, f"{label}: archive {archive_path.name} missing in {archive_path.parent}", logging.WARNING)
            outcome.status = ETLStatus.SKIPPED
            return outcome

        archive = self.archive_factory(archive_path)
        try:
            await asyncio.to_thread(archive.open)
            outcome.source_count = archive.record_count
            logger.info(f"{label}: reading {archive_path.name}, {archive.record_count} records")

            await store.prepare()
            outcome.deleted_count = await store.delete_all()
            logger.info(f"{label}: removed {outcome.deleted_count} previous documents from {store.name}")

            await self._load_records(store, archive, outcome, label)

        except (ArchiveReadError, DatabaseError) as e:
            outcome.status = ETLStatus.FAILED
            self._report(outcome, f"{label}: {self._describe(e)}", logging.ERROR)

        finally:
            archive.close()
            outcome.duration_seconds = round(time.monotonic() - started, 3)

        if outcome.status != ETLStatus.FAILED:
            if outcome.inserted_count == outcome.source_count:
                outcome.status = ETLStatus.SUCCESS
                logger.info(
                    f"{label}: import complete, {outcome.inserted_count}/{outcome.source_count} records inserted"
                )
            else:
                outcome.status = ETLStatus.PARTIAL
                self._report(
                    outcome,
                    f"{label}: only {outcome.inserted_count}/{outcome.source_count} records inserted",
                    logging.WARNING
                )

        return outcome

    async def _load_records(
        self,
        store: DocumentStore,
        archive: DbfArchive,
        outcome: ImportOutcome,
        label: str
    ) -> None:
        progress = self.progress_factory(label)
        progress.start(archive.record_count)
        records = archive.iter_records()
        offset = 0

        try:
            while True:
                raw_chunk = await asyncio.to_thread(archive.read_chunk, records, self.chunk_size)
                if not raw_chunk:
                    break

                documents = [sanitize_record(record) for record in raw_chunk]
                inserted = await self._write_chunk(store, documents, offset, outcome, label)

                offset += len(documents)
                outcome.inserted_count += inserted
                outcome.failed_count += len(documents) - inserted
                progress.update(outcome.inserted_count)
        finally:
            progress.stop()
            records.close()

        # Deleted rows are counted in the header but never yielded
        if archive.records_read != archive.record_count:
            logger.info(
                f"{label}: {archive.record_count - archive.records_read} rows flagged as deleted in the archive"
            )
        outcome.source_count = archive.records_read

    async def _write_chunk(
        self,
        store: DocumentStore,
        documents: List[Dict[str, Any]],
        offset: int,
        outcome: ImportOutcome,
        label: str
    ) -> int:
        """Insert a chunk, applying the failure policy; returns the inserted count"""
        try:
            return await store.insert(documents)
        except ChunkWriteError as e:
            if self.failure_policy is ChunkFailurePolicy.ABANDON or len(documents) == 1:
                self._reject(outcome, label, offset, len(documents), e)
                return 0

            logger.warning(
                f"{label}: chunk of {len(documents)} records at position {offset} rejected, "
                f"retrying ({self.failure_policy.value} policy)"
            )

            if self.failure_policy is ChunkFailurePolicy.RECORD:
                inserted = 0
                for index, document in enumerate(documents):
                    try:
                        inserted += await store.insert([document])
                    except ChunkWriteError as record_error:
                        self._reject(outcome, label, offset + index, 1, record_error)
                return inserted

            middle = len(documents) // 2
            first = await self._write_chunk(store, documents[:middle], offset, outcome, label)
            second = await self._write_chunk(store, documents[middle:], offset + middle, outcome, label)
            return first + second

    def _reject(
        self,
        outcome: ImportOutcome,
        label: str,
        offset: int,
        count: int,
        error: ChunkWriteError
    ) -> None:
        if count == 1:
            where = f"record {offset + 1}"
        else:
            where = f"records {offset + 1}-{offset + count}"
        self._report(outcome, f"{label}: {where} not inserted: {self._describe(error)}", logging.ERROR)

    def _report(self, outcome: ImportOutcome, message: str, level: int) -> None:
        """Log to console and error log; keep a bounded copy in the outcome"""
        logger.log(level, message)
        self.error_log.record(message)
        if len(outcome.errors) < self.max_recorded_errors:
            outcome.errors.append(message)

    @staticmethod
    def _describe(error: ETLException) -> str:
        cause = error.original_exception
        if cause is None:
            return error.message
        detail = str(getattr(cause, "orig", None) or cause).strip().splitlines()
        return f"{error.message} ({type(cause).__name__}: {detail[0] if detail else ''})"
