"""
SQLAlchemy models for the migration destination.

Models:
    base: Base declarative class and shared enums (ETLStatus, RunState, RecordType)
    collection: Table factory for document collections declared by binding modules
    migration_run: Run audit trail (one run, many per-pair outcomes)

Database Schema:
    Document collections are plain tables holding each sanitized record in a
    JSONB column. They are defined at startup from the binding modules and
    created on first load. The audit tables are static and can be created
    ahead of time with scripts/init_db.py.

Usage:
    from models.base import Base, RecordType, ETLStatus
    from models.collection import build_collection_table
    from models.migration_run import MigrationRun, ImportOutcomeRecord

Relationships:
    - MigrationRun → ImportOutcomeRecord (one-to-many)
"""

__all__ = [
    "Base",
    "ETLStatus",
    "RunState",
    "RecordType",
    "ARCHIVE_FILENAMES",
    "build_collection_table",
    "MigrationRun",
    "ImportOutcomeRecord",
]
