"""Mappings between persisted note types and AI inferred types.

The mapping is intentionally lossy for places: both ``poi`` and ``area``
note types map to ``Area``, while ``Area`` always maps back to ``poi``.
"""

from typing import Optional, Union

from helm_campaign.models.enums import ConfidenceLevel, InferredEntityType, NoteType

CONFIDENCE_THRESHOLDS = {
    "HIGH": 0.80,
    "REVIEW": 0.65,
    "LOW": 0.50,
}

HIGH_CONFIDENCE_THRESHOLD = CONFIDENCE_THRESHOLDS["HIGH"]
REVIEW_THRESHOLD = CONFIDENCE_THRESHOLDS["REVIEW"]

_INFERRED_TO_NOTE = {
    InferredEntityType.CHARACTER: NoteType.CHARACTER,
    InferredEntityType.NPC: NoteType.NPC,
    InferredEntityType.AREA: NoteType.POI,
    InferredEntityType.QUEST: NoteType.QUEST,
    InferredEntityType.SESSION_LOG: NoteType.SESSION_LOG,
    InferredEntityType.NOTE: NoteType.NOTE,
}

_NOTE_TO_INFERRED = {
    NoteType.CHARACTER: InferredEntityType.CHARACTER,
    NoteType.NPC: InferredEntityType.NPC,
    NoteType.POI: InferredEntityType.AREA,
    NoteType.AREA: InferredEntityType.AREA,
    NoteType.QUEST: InferredEntityType.QUEST,
    NoteType.SESSION_LOG: InferredEntityType.SESSION_LOG,
    NoteType.NOTE: InferredEntityType.NOTE,
}


def map_inferred_type_to_note_type(inferred_type: Union[InferredEntityType, str]) -> NoteType:
    """Map an inferred type to the canonical note type (``Area`` becomes ``poi``)."""
    return _INFERRED_TO_NOTE[InferredEntityType(inferred_type)]


def map_note_type_to_inferred_type(note_type: Optional[Union[NoteType, str]]) -> InferredEntityType:
    """Map a note type into the inferred vocabulary; unknown values become ``Note``."""
    if note_type is None:
        return InferredEntityType.NOTE
    try:
        return _NOTE_TO_INFERRED[NoteType(note_type)]
    except ValueError:
        return InferredEntityType.NOTE


def are_types_equivalent(inferred_type: Union[InferredEntityType, str], note_type: Union[NoteType, str]) -> bool:
    return map_note_type_to_inferred_type(note_type) == InferredEntityType(inferred_type)


def get_confidence_level(confidence: float) -> ConfidenceLevel:
    if confidence >= HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if confidence >= REVIEW_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW
