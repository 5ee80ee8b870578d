from helm_campaign.models.enums import (
    NUCLINO_SOURCE_SYSTEM,
    CacheType,
    CollectionType,
    ConfidenceLevel,
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
from helm_campaign.models.records import (
    AICacheEntry,
    AICacheStats,
    EnrichmentRun,
    EnrichmentTotals,
    ImportOptions,
    ImportRun,
    ImportStats,
    NeedsReviewItem,
    Note,
    NoteClassification,
    NoteImportSnapshot,
    NoteRelationship,
)

__all__ = [
    "NUCLINO_SOURCE_SYSTEM",
    "AICacheEntry",
    "AICacheStats",
    "CacheType",
    "CollectionType",
    "ConfidenceLevel",
    "EnrichmentRun",
    "EnrichmentStatus",
    "EnrichmentTotals",
    "EvidenceType",
    "ImportOptions",
    "ImportRun",
    "ImportRunStatus",
    "ImportStats",
    "InferredEntityType",
    "NeedsReviewItem",
    "Note",
    "NoteClassification",
    "NoteImportSnapshot",
    "NoteRelationship",
    "NoteType",
    "NoteVisibility",
    "QuestStatus",
    "RelationshipType",
    "ReviewStatus",
]
