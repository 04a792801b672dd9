"""
Legacy dBase (.dbf) archive extractor
"""

import shapefile
from itertools import islice
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple, Union
from core.exceptions import ArchiveReadError
import logging

logger = logging.getLogger(__name__)

RawRecord = List[Tuple[str, Any]]


class DbfArchive:
    """
    Read records from a legacy DBF archive.

    The binary format itself is decoded by pyshp's DBF reader; this class
    only exposes what the loader needs:
    - the record count from the archive header
    - a lazy, single-pass iterator of records as (field name, value) pairs,
      which keeps duplicate field names for the sanitizer to resolve
    """

    def __init__(
        self,
        path: Union[str, Path],
        encoding: str = "latin-1",
        encoding_errors: str = "replace"
    ):
        self.path = Path(path)
        self.encoding = encoding
        self.encoding_errors = encoding_errors
        self.field_names: List[str] = []
        self.record_count = 0
        self.records_read = 0
        self._file = None
        self._reader: Optional[shapefile.Reader] = None

    def open(self) -> "DbfArchive":
        """
        Open the archive and read its header.

        Raises:
            ArchiveReadError: If the file cannot be opened or the header is invalid
        """
        try:
            self._file = self.path.open("rb")
            self._reader = shapefile.Reader(
                dbf=self._file,
                encoding=self.encoding,
                encodingErrors=self.encoding_errors
            )
            # First field is pyshp's DeletionFlag
            self.field_names = [field[0] for field in self._reader.fields[1:]]
            self.record_count = self._reader.numRecords or 0
        except Exception as e:
            self.close()
            raise ArchiveReadError(
                "Failed to open archive",
                context={"archive_path": str(self.path)},
                original_exception=e
            )

        logger.debug(
            f"Opened {self.path} ({self.record_count} records, {len(self.field_names)} fields)"
        )
        return self

    def iter_records(self) -> Iterator[RawRecord]:
        """
        Yield live records (deleted rows are skipped by the reader).

        Raises:
            ArchiveReadError: If a record cannot be decoded
        """
        if self._reader is None:
            raise ArchiveReadError(
                "Archive is not open",
                context={"archive_path": str(self.path)}
            )

        try:
            for record in self._reader.iterRecords():
                self.records_read += 1
                yield list(zip(self.field_names, record))
        except Exception as e:
            raise ArchiveReadError(
                "Failed to read archive record",
                context={
                    "archive_path": str(self.path),
                    "records_read": self.records_read
                },
                original_exception=e
            )

    @staticmethod
    def read_chunk(records: Iterator[RawRecord], size: int) -> List[RawRecord]:
        """Pull the next chunk from a record iterator (empty when exhausted)"""
        return list(islice(records, size))

    def close(self) -> None:
        if self._reader is not None:
            self._reader.close()
            self._reader = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "DbfArchive":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
