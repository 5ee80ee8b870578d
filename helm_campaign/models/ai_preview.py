"""Models for comparing heuristic and AI classifications of an export."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from helm_campaign.models.enums import (
    EvidenceType,
    InferredEntityType,
    NoteType,
    QuestStatus,
    RelationshipType,
)


class BaselineClassification(BaseModel):
    source_page_id: str
    title: str
    note_type: NoteType
    quest_status: Optional[QuestStatus] = None
    is_empty: bool = False


class AIClassification(BaseModel):
    source_page_id: str
    title: str
    inferred_type: InferredEntityType
    confidence: float = Field(..., ge=0.0, le=1.0)
    explanation: str = ""
    extracted_entities: List[str] = Field(default_factory=list)


class AIRelationship(BaseModel):
    from_page_id: str
    from_title: str
    to_page_id: str
    to_title: str
    relationship_type: RelationshipType
    confidence: float = Field(..., ge=0.0, le=1.0)
    evidence_snippet: str = ""
    evidence_type: EvidenceType


class BaselineSummary(BaseModel):
    total: int = 0
    characters: int = 0
    npcs: int = 0
    pois: int = 0
    quests_open: int = 0
    quests_done: int = 0
    notes: int = 0
    empty: int = 0


class AIEnhancedSummary(BaseModel):
    total: int = 0
    npcs: int = 0
    areas: int = 0
    quests: int = 0
    characters: int = 0
    session_logs: int = 0
    notes: int = 0
    relationships_total: int = 0
    relationships_high: int = Field(0, description="confidence >= 0.80")
    relationships_medium: int = Field(0, description="0.65 <= confidence < 0.80")
    relationships_low: int = Field(0, description="0.50 <= confidence < 0.65")


class DiffStats(BaseModel):
    changed_count: int = Field(0, description="Pages where the AI type differs from the baseline")
    upgraded_count: int = Field(0, description="Pages where the AI type confirms the baseline")
    total_pages: int = 0


class AIImportPreview(BaseModel):
    """Side-by-side baseline and AI classification of one processed export.

    Passed back to ``ImportService.commit_import`` to import with the AI
    types and record the results as an enrichment run.
    """
    baseline_summary: BaselineSummary
    baseline_classifications: List[BaselineClassification] = Field(default_factory=list)
    ai_summary: AIEnhancedSummary
    ai_classifications: List[AIClassification] = Field(default_factory=list)
    relationships: List[AIRelationship] = Field(default_factory=list)
    diff: DiffStats

    def classifications_by_page_id(self) -> Dict[str, AIClassification]:
        return {item.source_page_id: item for item in self.ai_classifications}
