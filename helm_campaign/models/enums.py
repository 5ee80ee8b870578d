"""Enumerations shared by the import, enrichment and cache layers."""

from enum import Enum


class NoteType(str, Enum):
    """Persisted note types."""
    AREA = "area"
    CHARACTER = "character"
    NPC = "npc"
    POI = "poi"
    QUEST = "quest"
    SESSION_LOG = "session_log"
    NOTE = "note"


class QuestStatus(str, Enum):
    """Quest lifecycle states, only meaningful for quest notes."""
    LEAD = "lead"
    TODO = "todo"
    ACTIVE = "active"
    DONE = "done"
    ABANDONED = "abandoned"


class InferredEntityType(str, Enum):
    """Entity types produced by AI classification."""
    CHARACTER = "Character"
    NPC = "NPC"
    AREA = "Area"
    QUEST = "Quest"
    SESSION_LOG = "SessionLog"
    NOTE = "Note"


class CollectionType(str, Enum):
    NOTABLE_PEOPLE = "notable_people"
    PLACES = "places"
    TODO = "todo"
    DONE = "done"
    OTHER = "other"


class ImportRunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    DELETED = "deleted"


class NoteVisibility(str, Enum):
    PRIVATE = "private"
    TEAM = "team"


class EnrichmentStatus(str, Enum):
    """Enrichment run state machine: pending -> running -> completed | failed."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ReviewStatus(str, Enum):
    """Review status for classification and relationship records."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RelationshipType(str, Enum):
    QUEST_HAS_NPC = "QuestHasNPC"
    QUEST_AT_PLACE = "QuestAtPlace"
    NPC_IN_PLACE = "NPCInPlace"
    RELATED = "Related"


class EvidenceType(str, Enum):
    LINK = "Link"
    MENTION = "Mention"
    HEURISTIC = "Heuristic"


class CacheType(str, Enum):
    CLASSIFICATION = "classification"
    RELATIONSHIP = "relationship"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


NUCLINO_SOURCE_SYSTEM = "NUCLINO"
