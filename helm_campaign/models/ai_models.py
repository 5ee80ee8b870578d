"""Input and output models for AI providers."""

from typing import List, Optional

from pydantic import BaseModel, Field

from helm_campaign.models.enums import EvidenceType, InferredEntityType, RelationshipType


class NoteForClassification(BaseModel):
    id: str
    title: str
    content: str = ""
    current_type: Optional[str] = None
    existing_links: List[str] = Field(default_factory=list)


class ClassificationOptions(BaseModel):
    player_character_names: List[str] = Field(default_factory=list)


class ClassificationResult(BaseModel):
    note_id: str
    inferred_type: InferredEntityType
    confidence: float = Field(..., ge=0.0, le=1.0)
    explanation: str = ""
    extracted_entities: List[str] = Field(default_factory=list)


class InternalLink(BaseModel):
    target_note_id: str
    link_text: str


class NoteWithClassification(BaseModel):
    """A note as seen by relationship extraction."""
    id: str
    title: str
    content: str = ""
    inferred_type: InferredEntityType
    internal_links: List[InternalLink] = Field(default_factory=list)


class RelationshipResult(BaseModel):
    from_note_id: str
    to_note_id: str
    relationship_type: RelationshipType
    confidence: float = Field(..., ge=0.0, le=1.0)
    evidence_snippet: str = ""
    evidence_type: EvidenceType
