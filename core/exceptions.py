"""
Custom exceptions for the migration pipeline with structured error context.

This module provides the exception hierarchy used to separate fatal,
entity-level and record-level failures. Each exception carries context
information for the error log and the run summary.

Exception Hierarchy:
    ETLException (base)
    ├── ConfigurationError            fatal, before any connection attempt
    ├── ExtractionError
    │   └── ArchiveReadError          entity-level, the pair is not loaded
    ├── BindingError                  entity-level, the binding is unavailable
    └── LoadError
        └── DatabaseError
            ├── ChunkWriteError       record-level, handled by the chunk policy
            └── DatabaseConnectionError   fatal, aborts the run
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all migration errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (site, record type, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        # Add timestamp to context
        self.context["error_timestamp"] = self.timestamp.isoformat()

        # Chain original exception if provided
        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg


# ============================================================================
# Configuration Errors
# ============================================================================

class ConfigurationError(ETLException):
    """
    Exception raised when required configuration is missing.

    Context should include:
        - setting: Name of the missing setting
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for data extraction failures."""
    pass


class ArchiveReadError(ExtractionError):
    """
    Exception raised when a legacy archive cannot be opened or read.

    Context should include:
        - archive_path: Path to the archive file
        - records_read: Records read before the failure (if applicable)
    """
    pass


# ============================================================================
# Binding Errors
# ============================================================================

class BindingError(ETLException):
    """
    Exception raised when a binding module is missing or malformed.

    Context should include:
        - site: Site identifier
        - record_type: Record type value
        - module_path: Path of the binding module
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for data loading failures."""
    pass


class DatabaseError(LoadError):
    """
    Exception raised when database operations fail.

    Context should include:
        - operation: Type of database operation (CREATE, DELETE, INSERT)
        - table_name: Name of the table
    """
    pass


class ChunkWriteError(DatabaseError):
    """
    Exception raised when the destination rejects a chunk insert.

    The chunk is rolled back as a whole; the loader decides how to retry it.

    Context should include:
        - table_name: Name of the destination table
        - chunk_size: Number of documents in the rejected chunk
    """
    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when the destination cannot be reached at run start."""
    pass
