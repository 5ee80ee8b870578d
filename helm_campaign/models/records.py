"""Persisted domain records.

These pydantic models are the currency of the ``Storage`` interface; both
the in-memory and the SQLAlchemy adapters accept and return them.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from helm_campaign.models.enums import (
    CacheType,
    EnrichmentStatus,
    EvidenceType,
    ImportRunStatus,
    InferredEntityType,
    NoteType,
    NoteVisibility,
    QuestStatus,
    RelationshipType,
    ReviewStatus,
)


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    @field_validator("*", mode="after")
    @classmethod
    def _assume_utc(cls, value: Any) -> Any:
        # Some database drivers hand back naive timestamps; they are stored as UTC.
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Note(RecordModel):
    """A campaign note owned by a team."""

    id: str = Field(default_factory=new_id)
    team_id: str
    title: str
    content: str = ""
    note_type: NoteType = NoteType.NOTE
    quest_status: Optional[QuestStatus] = Field(
        default=None, description="Only set when note_type is quest"
    )
    is_private: bool = False
    linked_note_ids: List[str] = Field(default_factory=list)
    session_date: Optional[date] = None

    source_system: Optional[str] = None
    source_page_id: Optional[str] = None
    content_markdown: Optional[str] = None
    content_markdown_resolved: Optional[str] = None
    import_run_id: Optional[str] = None

    created_by_user_id: Optional[str] = None
    updated_by_user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _clear_quest_status(self) -> "Note":
        if self.note_type != NoteType.QUEST and self.quest_status is not None:
            self.quest_status = None
        return self


class ImportOptions(RecordModel):
    import_empty_pages: bool = True
    default_visibility: NoteVisibility = NoteVisibility.TEAM


class ImportStats(RecordModel):
    total_pages_detected: int = 0
    notes_created: int = 0
    notes_updated: int = 0
    notes_skipped: int = 0
    empty_pages_imported: int = 0
    links_resolved: int = 0
    warnings_count: int = 0


class ImportRun(RecordModel):
    """One commit of a wiki export into a team's notes."""

    id: str = Field(default_factory=new_id)
    team_id: str
    source_system: str
    status: ImportRunStatus = ImportRunStatus.COMPLETED
    options: ImportOptions = Field(default_factory=ImportOptions)
    stats: ImportStats = Field(default_factory=ImportStats)
    created_by_user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class NoteImportSnapshot(RecordModel):
    """Pre-import field values of a note that an import updated."""

    id: str = Field(default_factory=new_id)
    note_id: str
    import_run_id: str
    previous_title: str
    previous_content: Optional[str] = None
    previous_note_type: NoteType
    previous_quest_status: Optional[QuestStatus] = None
    previous_content_markdown: Optional[str] = None
    previous_content_markdown_resolved: Optional[str] = None
    previous_is_private: bool = False
    created_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def from_note(cls, note: Note, import_run_id: str) -> "NoteImportSnapshot":
        return cls(
            note_id=note.id,
            import_run_id=import_run_id,
            previous_title=note.title,
            previous_content=note.content,
            previous_note_type=note.note_type,
            previous_quest_status=note.quest_status,
            previous_content_markdown=note.content_markdown,
            previous_content_markdown_resolved=note.content_markdown_resolved,
            previous_is_private=note.is_private,
        )


class EnrichmentTotals(RecordModel):
    notes_processed: int = 0
    classifications_created: int = 0
    relationships_found: int = 0
    high_confidence_count: int = 0
    low_confidence_count: int = 0
    user_review_required: int = 0


class EnrichmentRun(RecordModel):
    """One AI enrichment pass over an import run's notes."""

    id: str = Field(default_factory=new_id)
    import_run_id: str
    team_id: str
    created_by_user_id: Optional[str] = None
    status: EnrichmentStatus = EnrichmentStatus.PENDING
    totals: Optional[EnrichmentTotals] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class NoteClassification(RecordModel):
    id: str = Field(default_factory=new_id)
    note_id: str
    enrichment_run_id: str
    inferred_type: InferredEntityType
    confidence: float = Field(..., ge=0.0, le=1.0)
    explanation: Optional[str] = None
    extracted_entities: List[str] = Field(default_factory=list)
    status: ReviewStatus = ReviewStatus.PENDING
    approved_by_user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class NoteRelationship(RecordModel):
    id: str = Field(default_factory=new_id)
    enrichment_run_id: str
    from_note_id: str
    to_note_id: str
    relationship_type: RelationshipType
    confidence: float = Field(..., ge=0.0, le=1.0)
    evidence_snippet: Optional[str] = None
    evidence_type: EvidenceType
    status: ReviewStatus = ReviewStatus.PENDING
    approved_by_user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class AICacheEntry(RecordModel):
    """A cached AI result addressed by content, version, context and team."""

    id: str = Field(default_factory=new_id)
    cache_type: CacheType
    content_hash: str = Field(..., description="SHA-256 of normalized content, or pair hash")
    algorithm_version: str
    context_hash: Optional[str] = Field(
        default=None, description="Hash of player-character names; None for relationships"
    )
    team_id: str
    result: Dict[str, Any]
    model_id: Optional[str] = None
    tokens_saved: Optional[int] = None
    hit_count: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    last_hit_at: Optional[datetime] = None
    expires_at: datetime


class AICacheStats(RecordModel):
    total_entries: int = 0
    entries_by_type: Dict[str, int] = Field(default_factory=dict)
    total_hits: int = 0
    oldest_entry: Optional[datetime] = None
    newest_entry: Optional[datetime] = None
    entries_expiring_soon: int = 0


class NeedsReviewItem(RecordModel):
    """A pending low-confidence classification joined with its note."""

    classification_id: str
    note_id: str
    note_title: str
    inferred_type: InferredEntityType
    confidence: float
    explanation: Optional[str] = None
