"""Pydantic models for parsed Nuclino exports."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from helm_campaign.models.enums import CollectionType, NoteType, QuestStatus


class ExportEntry(BaseModel):
    """One file from a wiki export."""
    filename: str
    content: str
    last_modified: Optional[datetime] = None


class NuclinoLink(BaseModel):
    text: str = Field(..., description="Visible link text")
    target_filename: str = Field(..., description="Linked .md filename without the ?n suffix")
    target_page_id: str = Field(..., description="Page ID parsed from the target filename")
    full_match: str = Field(..., description="Exact markdown span, used for rewriting")


class NuclinoPage(BaseModel):
    """A parsed export page. Ephemeral: consumed by classification, never persisted."""
    filename: str
    source_page_id: str
    title: str
    content: str = Field(..., description="Decoded content with tree art removed")
    content_raw: str
    links: List[NuclinoLink] = Field(default_factory=list)
    is_empty: bool = False
    last_modified: Optional[datetime] = None


class CollectionInfo(BaseModel):
    source_page_id: str
    title: str
    linked_page_ids: List[str] = Field(default_factory=list)
    collection_type: CollectionType = CollectionType.OTHER


class PageClassification(BaseModel):
    """Baseline (heuristic) classification of a page."""
    note_type: NoteType
    quest_status: Optional[QuestStatus] = None


class ImportSummary(BaseModel):
    total_pages: int = 0
    empty_pages: int = 0
    characters: int = 0
    npcs: int = 0
    pois: int = 0
    quests_open: int = 0
    quests_done: int = 0
    notes: int = Field(0, description="Everything else, including session logs and collection pages")


class ProcessedExport(BaseModel):
    pages: List[NuclinoPage] = Field(default_factory=list)
    collections: List[CollectionInfo] = Field(default_factory=list)
    classifications: Dict[str, PageClassification] = Field(
        default_factory=dict, description="source_page_id -> baseline classification"
    )
    summary: ImportSummary = Field(default_factory=ImportSummary)


class ImportCommitResult(BaseModel):
    import_run_id: str
    enrichment_run_id: Optional[str] = Field(None, description="Set when the import used AI classifications")
    notes_created: int = 0
    notes_updated: int = 0
    notes_skipped: int = 0
    note_ids_by_page_id: Dict[str, str] = Field(default_factory=dict)
    warnings: List[str] = Field(default_factory=list)


class ImportRollbackResult(BaseModel):
    import_run_id: str
    notes_deleted: int = 0
    notes_restored: int = 0
