"""
Logging configuration and the persistent error log
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Union
from core.config import settings


def setup_logging():
    """Configure application logging"""

    # Get log level from settings
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )

    # Set SQLAlchemy logging to WARNING to reduce noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {settings.LOG_LEVEL} level")


# ============================================================================
# Error Log
# ============================================================================

class _IsoTimestampFormatter(logging.Formatter):
    """Formats records as '<ISO-8601 timestamp> - <message>'"""

    def __init__(self):
        super().__init__("%(asctime)s - %(message)s")

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created).astimezone().isoformat()


class _BestEffortFileHandler(logging.FileHandler):
    """Append-only file handler that drops records it cannot write"""

    def emit(self, record):
        # Opening the delayed stream happens outside logging's own error handling
        try:
            super().emit(record)
        except Exception:
            self.handleError(record)

    def handleError(self, record):
        pass


class ErrorLog:
    """
    Append-only sink for warnings and errors, separate from console output.

    Every call to record() appends one timestamped line to the file so the
    failures of a run can be inspected after the process exits. Writing is
    best effort: a sink that cannot be opened or written never raises.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._logger = logging.getLogger(f"migration.error_log.{self.path.resolve()}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False

        if not self._logger.handlers:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
            except OSError:
                pass  # the handler will fail silently on first write
            handler = _BestEffortFileHandler(self.path, mode="a", encoding="utf-8", delay=True)
            handler.setFormatter(_IsoTimestampFormatter())
            self._logger.addHandler(handler)

    def record(self, message: str) -> None:
        """Append a single timestamped line"""
        self._logger.info(" ".join(str(message).splitlines()))

    def close(self) -> None:
        for handler in list(self._logger.handlers):
            handler.close()
            self._logger.removeHandler(handler)
