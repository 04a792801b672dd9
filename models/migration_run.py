from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Float, Integer, ForeignKey, Index, JSON, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, ETLStatus, RecordType, RunState


class MigrationRun(Base):
    """
    Tracks metadata for each migration run.

    Purpose:
    - Audit trail of all runs
    - Comparing source/inserted totals across executions
    """
    __tablename__ = "migration_runs"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    run_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    state = Column(Enum(RunState), default=RunState.RUNNING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    pairs_loaded = Column(Integer, default=0)
    pairs_skipped = Column(Integer, default=0)
    records_source = Column(BigInteger, default=0)
    records_inserted = Column(BigInteger, default=0)

    # Skipped sites and pairs with their reasons
    skipped = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    outcomes = relationship("ImportOutcomeRecord", back_populates="run", cascade="all, delete-orphan")


class ImportOutcomeRecord(Base):
    """One (site, record type) import within a run"""
    __tablename__ = "migration_outcomes"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    run_id = Column(BigInteger, ForeignKey("migration_runs.id"), nullable=False, index=True)

    site = Column(String(100), nullable=False)
    record_type = Column(Enum(RecordType), nullable=False)
    collection = Column(String(255), nullable=True)
    status = Column(Enum(ETLStatus), nullable=False)

    source_count = Column(Integer, default=0)
    inserted_count = Column(Integer, default=0)
    failed_count = Column(Integer, default=0)
    deleted_count = Column(Integer, default=0)
    duration_seconds = Column(Float, nullable=True)

    errors = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    run = relationship("MigrationRun", back_populates="outcomes")

    __table_args__ = (
        Index("idx_outcome_site_type", "site", "record_type"),
    )
