"""
Migration pipeline components for legacy DBF archives.

This package contains all components that move archive records into
document collections:

Modules:
    base: Abstract destination document store
    bindings: Registry of (site, record type) bindings scanned at startup
    progress: Progress reporting (tqdm bars or no-op)
    runner: Orchestrator that drives sites x record types
    cli: Command line entry point

Subpackages:
    extractors: DBF archive reader adapter
    transformers: Record sanitization
    loaders: JSONB collection store and chunked batch loader

Architecture:
    Each (site, record type) pair is migrated independently:

    1. Resolve - Find the binding declared for the pair
    2. Replace - Delete every document of the bound collection
    3. Load - Read, sanitize and insert the archive in chunks

    Rejected records are counted and logged; only a failed connection at
    startup aborts the run.

Usage:
    from ingestion.runner import MigrationRunner
    from ingestion.bindings import BindingRegistry

Example:
    runner = MigrationRunner(config=settings)
    summary = await runner.run(sites=["AVB"])

    print(f"Inserted {summary.total_inserted_count}/{summary.total_source_count} records")
"""

__all__ = [
    "DocumentStore",
    "BindingRegistry",
    "StoreBinding",
    "MigrationRunner",
    "RunContext",
    "BatchLoader",
    "ChunkFailurePolicy",
    "DbfArchive",
    "PostgresCollection",
    "sanitize_record",
    "create_progress_reporter",
]
