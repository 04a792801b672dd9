"""
Pydantic schemas for the migration results.

Schemas:
    migration: ImportOutcome (one site and record type), SkippedEntry and
               RunSummary (the whole run)

Usage:
    from schemas.migration import ImportOutcome, RunSummary

Example:
    outcome = ImportOutcome(
        site="AVB",
        record_type=RecordType.ARTICLE,
        archive_path="_dbf/AVB/article.dbf",
        source_count=3,
        inserted_count=3,
    )
    assert outcome.missing_count == 0
"""

__all__ = [
    "ImportOutcome",
    "SkippedEntry",
    "RunSummary",
]
