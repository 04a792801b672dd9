"""
Pydantic schemas for import outcomes and run summaries
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime, timezone
from uuid import UUID, uuid4
from models.base import ETLStatus, RecordType, RunState


class ImportOutcome(BaseModel):
    """
    Result of loading one (site, record type) pair.

    inserted_count may be lower than source_count when the destination
    rejects records; the difference is never hidden.
    """
    site: str
    record_type: RecordType
    collection: Optional[str] = None
    archive_path: str
    status: ETLStatus = ETLStatus.PENDING

    source_count: int = Field(default=0, ge=0)
    inserted_count: int = Field(default=0, ge=0)
    failed_count: int = Field(default=0, ge=0)
    deleted_count: int = Field(default=0, ge=0)

    errors: List[str] = Field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def label(self) -> str:
        return f"{self.site}/{self.record_type.value}"

    @property
    def missing_count(self) -> int:
        """Source records that did not make it into the destination"""
        return max(self.source_count - self.inserted_count, 0)


class SkippedEntry(BaseModel):
    """A site or (site, record type) pair that was not loaded"""
    site: str
    record_type: Optional[RecordType] = None
    reason: str

    @property
    def label(self) -> str:
        if self.record_type is None:
            return self.site
        return f"{self.site}/{self.record_type.value}"


class RunSummary(BaseModel):
    """Aggregate of all outcomes of a migration run"""
    run_id: UUID = Field(default_factory=uuid4)
    state: RunState = RunState.CONNECTING
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    elapsed_seconds: float = 0.0

    outcomes: List[ImportOutcome] = Field(default_factory=list)
    skipped: List[SkippedEntry] = Field(default_factory=list)

    @property
    def total_source_count(self) -> int:
        return sum(o.source_count for o in self.outcomes)

    @property
    def total_inserted_count(self) -> int:
        return sum(o.inserted_count for o in self.outcomes)

    @property
    def sites(self) -> List[str]:
        """Sites with at least one outcome, in processing order"""
        seen = []
        for outcome in self.outcomes:
            if outcome.site not in seen:
                seen.append(outcome.site)
        return seen

    def outcome_for(self, site: str, record_type: RecordType) -> Optional[ImportOutcome]:
        for outcome in self.outcomes:
            if outcome.site == site and outcome.record_type == record_type:
                return outcome
        return None
