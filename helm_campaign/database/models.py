"""SQLAlchemy models for notes, import/enrichment records and the AI cache."""

from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from helm_campaign.core.database import Base
from helm_campaign.models.records import new_id, utc_now

# JSONB on PostgreSQL, plain JSON elsewhere.
JSONType = JSON().with_variant(JSONB(), "postgresql")


class NoteRow(Base):
    """Campaign note owned by a team."""

    __tablename__ = "notes"
    __table_args__ = (
        UniqueConstraint("team_id", "source_system", "source_page_id", name="uq_notes_team_source_page"),
        UniqueConstraint("team_id", "note_type", "session_date", name="uq_notes_team_type_session_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    team_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    note_type: Mapped[str] = mapped_column(String, nullable=False, default="note")
    quest_status: Mapped[str | None] = mapped_column(String, nullable=True)  # only for quest notes
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    linked_note_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    session_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    source_system: Mapped[str | None] = mapped_column(String, nullable=True)
    source_page_id: Mapped[str | None] = mapped_column(String, nullable=True)
    content_markdown: Mapped[str | None] = mapped_column(Text, nullable=True)
    content_markdown_resolved: Mapped[str | None] = mapped_column(Text, nullable=True)
    import_run_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("import_runs.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


class ImportRunRow(Base):
    __tablename__ = "import_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    team_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    source_system: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="completed")  # completed | failed | deleted
    options: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    stats: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    created_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


class NoteImportSnapshotRow(Base):
    """Pre-import values of a note updated by an import run."""

    __tablename__ = "note_import_snapshots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    note_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    import_run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("import_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    previous_title: Mapped[str] = mapped_column(String, nullable=False)
    previous_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_note_type: Mapped[str] = mapped_column(String, nullable=False)
    previous_quest_status: Mapped[str | None] = mapped_column(String, nullable=True)
    previous_content_markdown: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_content_markdown_resolved: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)


class EnrichmentRunRow(Base):
    __tablename__ = "enrichment_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    import_run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("import_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    team_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | running | completed | failed
    totals: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


class NoteClassificationRow(Base):
    __tablename__ = "note_classifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    note_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    enrichment_run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrichment_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    inferred_type: Mapped[str] = mapped_column(String, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_entities: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")  # pending | approved | rejected
    approved_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


class NoteRelationshipRow(Base):
    __tablename__ = "note_relationships"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    enrichment_run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("enrichment_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_note_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False
    )
    to_note_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("notes.id", ondelete="CASCADE"), nullable=False
    )
    relationship_type: Mapped[str] = mapped_column(String, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    evidence_snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence_type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approved_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )


class AICacheEntryRow(Base):
    """Cached AI result, addressed by (type, content hash, version, context hash, team)."""

    __tablename__ = "ai_cache_entries"
    __table_args__ = (
        Index(
            "ix_ai_cache_lookup",
            "cache_type", "content_hash", "algorithm_version", "context_hash", "team_id",
        ),
        Index("ix_ai_cache_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    cache_type: Mapped[str] = mapped_column(String, nullable=False)  # classification | relationship
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    algorithm_version: Mapped[str] = mapped_column(String, nullable=False)
    context_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    team_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    result: Mapped[dict] = mapped_column(JSONType, nullable=False)
    model_id: Mapped[str | None] = mapped_column(String, nullable=True)
    tokens_saved: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)
    last_hit_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
