"""
Core utilities and configuration for the legacy DBF migration.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine, session factory and connectivity probe
    exceptions: Custom exception hierarchy (fatal, entity-level, record-level)
    logging: Logging configuration and the persistent error log

Usage:
    from core.config import settings
    from core.database import create_engine, verify_connection
    from core.exceptions import ArchiveReadError, ChunkWriteError
    from core.logging import setup_logging, ErrorLog

Example:
    # Initialize logging
    setup_logging()

    # Record a warning that must survive the process
    error_log = ErrorLog(settings.ERROR_LOG_PATH)
    error_log.record("AVB/article: archive missing")
"""

__all__ = [
    "settings",
    "create_engine",
    "create_session_maker",
    "verify_connection",
    "setup_logging",
    "ErrorLog",
    # Exceptions
    "ETLException",
    "ConfigurationError",
    "ExtractionError",
    "ArchiveReadError",
    "BindingError",
    "LoadError",
    "DatabaseError",
    "ChunkWriteError",
    "DatabaseConnectionError",
]
