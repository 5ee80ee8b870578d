"""Deterministic AI provider for tests and offline runs."""

import re
from typing import Dict, List, Optional, Sequence

from helm_campaign.models.ai_models import (
    ClassificationOptions,
    ClassificationResult,
    NoteForClassification,
    NoteWithClassification,
    RelationshipResult,
)
from helm_campaign.models.enums import EvidenceType, InferredEntityType, RelationshipType
from helm_campaign.services.ai.provider import AIProvider, ProgressCallback
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

PERSON_INDICATORS = [
    "lord", "lady", "king", "queen", "prince", "princess",
    "captain", "commander", "chief", "elder", "master",
    "dr.", "doctor", "professor", "sir", "dame",
]

PLACE_INDICATORS = [
    "city", "town", "village", "castle", "tower", "dungeon",
    "forest", "mountain", "river", "lake", "ocean", "sea",
    "tavern", "inn", "temple", "shrine", "guild", "academy",
    "kingdom", "empire", "realm", "lands of",
]

QUEST_INDICATORS = [
    "quest", "mission", "task", "find the", "defeat the",
    "rescue", "retrieve", "discover", "investigate",
    "kill the", "destroy the", "save the",
]

SESSION_INDICATORS = [
    "session", "episode", "chapter", "part",
    "game night", "recap", "summary",
]

MAX_EXTRACTED_ENTITIES = 10

_TWO_CAPITALIZED_WORDS_RE = re.compile(r"^[A-Z][a-z]+ [A-Z][a-z]+$")
_NON_ALPHA_RE = re.compile(r"[^a-zA-Z]")
_SENTENCE_END_RE = re.compile(r"[.!?]$")


class MockAIProvider(AIProvider):
    """Keyword-heuristic provider with optional canned results.

    Canned classifications (``set_mock_classification``) win over the
    heuristics. Relationship extraction returns exactly the canned
    relationships. Calls are recorded for assertions.
    """

    name = "mock"

    def __init__(self, default_confidence: float = 0.75):
        self.default_confidence = default_confidence
        self.mock_classifications: Dict[str, ClassificationResult] = {}
        self.mock_relationships: List[RelationshipResult] = []
        self.classify_calls: List[List[str]] = []
        self.relationship_calls: List[List[str]] = []

    def set_mock_classification(
        self,
        note_id: str,
        inferred_type: InferredEntityType = InferredEntityType.NOTE,
        confidence: Optional[float] = None,
        explanation: str = "Mock classification",
        extracted_entities: Optional[List[str]] = None,
    ) -> None:
        self.mock_classifications[note_id] = ClassificationResult(
            note_id=note_id,
            inferred_type=inferred_type,
            confidence=self.default_confidence if confidence is None else confidence,
            explanation=explanation,
            extracted_entities=extracted_entities or [],
        )

    def set_mock_relationships(self, relationships: Sequence[RelationshipResult]) -> None:
        self.mock_relationships = list(relationships)

    def add_mock_relationship(
        self,
        from_note_id: str,
        to_note_id: str,
        relationship_type: RelationshipType = RelationshipType.RELATED,
        confidence: Optional[float] = None,
        evidence_snippet: str = "Mock evidence",
        evidence_type: EvidenceType = EvidenceType.HEURISTIC,
    ) -> None:
        self.mock_relationships.append(RelationshipResult(
            from_note_id=from_note_id,
            to_note_id=to_note_id,
            relationship_type=relationship_type,
            confidence=self.default_confidence if confidence is None else confidence,
            evidence_snippet=evidence_snippet,
            evidence_type=evidence_type,
        ))

    def set_default_confidence(self, confidence: float) -> None:
        self.default_confidence = confidence

    def clear(self) -> None:
        self.mock_classifications.clear()
        self.mock_relationships = []
        self.classify_calls = []
        self.relationship_calls = []

    async def classify_notes(
        self,
        notes: Sequence[NoteForClassification],
        on_progress: Optional[ProgressCallback] = None,
        options: Optional[ClassificationOptions] = None,
    ) -> List[ClassificationResult]:
        self.classify_calls.append([note.id for note in notes])
        pc_names = {
            name.strip().lower()
            for name in (options.player_character_names if options else [])
            if name.strip()
        }

        results = []
        for index, note in enumerate(notes, start=1):
            canned = self.mock_classifications.get(note.id)
            if canned is not None:
                results.append(canned.model_copy(update={"note_id": note.id}))
            else:
                results.append(self._classify_by_heuristics(note, pc_names))
            if on_progress:
                on_progress(index, len(notes), note.title)
        return results

    async def extract_relationships(
        self,
        notes: Sequence[NoteWithClassification],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[RelationshipResult]:
        self.relationship_calls.append([note.id for note in notes])
        if on_progress:
            on_progress(len(notes), len(notes), None)
        return [relationship.model_copy() for relationship in self.mock_relationships]

    def _classify_by_heuristics(self, note: NoteForClassification, pc_names: set) -> ClassificationResult:
        title = note.title.lower()
        content = (note.content or "").lower()

        # Later rules override earlier ones.
        inferred_type = InferredEntityType.NOTE
        confidence = self.default_confidence
        explanation = "Default mock classification"

        if any(ind in title for ind in PERSON_INDICATORS) or _TWO_CAPITALIZED_WORDS_RE.match(note.title.strip()):
            inferred_type = InferredEntityType.NPC
            explanation = "Title contains person indicator"
            confidence = 0.80

        if any(ind in title for ind in PLACE_INDICATORS):
            inferred_type = InferredEntityType.AREA
            explanation = "Title contains place indicator"
            confidence = 0.85

        if any(ind in title or ind in content for ind in QUEST_INDICATORS):
            inferred_type = InferredEntityType.QUEST
            explanation = "Title/content contains quest indicator"
            confidence = 0.75

        if any(ind in title for ind in SESSION_INDICATORS):
            inferred_type = InferredEntityType.SESSION_LOG
            explanation = "Title contains session log indicator"
            confidence = 0.90

        if title.strip() in pc_names:
            inferred_type = InferredEntityType.CHARACTER
            explanation = "Title matches a player character name"
            confidence = 0.90

        return ClassificationResult(
            note_id=note.id,
            inferred_type=inferred_type,
            confidence=confidence,
            explanation=explanation,
            extracted_entities=extract_simple_entities(note.content or ""),
        )


def extract_simple_entities(content: str) -> List[str]:
    """Capitalized words that don't start a sentence, at most ten."""
    entities: List[str] = []
    words = content.split()

    for i in range(1, len(words)):
        word = _NON_ALPHA_RE.sub("", words[i])
        if len(word) <= 2 or not word[0].isupper() or word[1:] != word[1:].lower():
            continue
        if _SENTENCE_END_RE.search(words[i - 1]):
            continue
        if word not in entities:
            entities.append(word)

    return entities[:MAX_EXTRACTED_ENTITIES]
