"""AI provider backed by an external LLM."""

import asyncio
import json
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from helm_campaign.core.unified_llm import UnifiedLLMClient
from helm_campaign.models.ai_models import (
    ClassificationOptions,
    ClassificationResult,
    NoteForClassification,
    NoteWithClassification,
    RelationshipResult,
)
from helm_campaign.models.enums import EvidenceType, InferredEntityType, RelationshipType
from helm_campaign.prompts.system_prompts import (
    NOTE_CLASSIFICATION_PROMPT,
    NOTE_CLASSIFICATION_USER_TEMPLATE,
    PC_CONTEXT_TEMPLATE,
    RELATIONSHIP_EXTRACTION_PROMPT,
    RELATIONSHIP_EXTRACTION_USER_TEMPLATE,
)
from helm_campaign.services.ai.provider import AIProvider, ProgressCallback
from helm_campaign.utils.json_parser import parse_json_safely
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

MAX_LINKS_IN_PROMPT = 10
PARSE_FAILURE_CONFIDENCE = 0.5

# Older prompt revisions answered "Person"/"Place".
_TYPE_ALIASES = {
    "Person": InferredEntityType.NPC,
    "Place": InferredEntityType.AREA,
}


def _chunk(items: Sequence[T], size: int) -> List[List[T]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _clamp(value: Any) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return 0.0


class LLMAIProvider(AIProvider):
    """Classifies notes and extracts relationships through ``UnifiedLLMClient``.

    Notes are sent in batches with a short pause between batches. Transport
    and API failures propagate as ``APIClientError`` so the enrichment job
    fails visibly. Unparseable answers degrade to low-confidence ``Note``
    classifications and to no relationships.
    """

    name = "llm"

    def __init__(
        self,
        client: UnifiedLLMClient,
        batch_size: int = 10,
        rate_limit_delay_ms: int = 150,
        classification_content_limit: int = 2000,
        relationship_content_limit: int = 1500,
        max_output_tokens: int = 4096,
    ):
        self.client = client
        self.batch_size = max(1, batch_size)
        self.rate_limit_delay = rate_limit_delay_ms / 1000.0
        self.classification_content_limit = classification_content_limit
        self.relationship_content_limit = relationship_content_limit
        self.generation_config = {"temperature": 0.0, "max_output_tokens": max_output_tokens}

    # ========== CLASSIFICATION ==========

    async def classify_notes(
        self,
        notes: Sequence[NoteForClassification],
        on_progress: Optional[ProgressCallback] = None,
        options: Optional[ClassificationOptions] = None,
    ) -> List[ClassificationResult]:
        results: List[ClassificationResult] = []
        batches = _chunk(notes, self.batch_size)
        pc_names = options.player_character_names if options else []

        for index, batch in enumerate(batches):
            results.extend(await self._classify_batch(batch, pc_names))
            if on_progress:
                on_progress(len(results), len(notes), batch[-1].title)
            if index < len(batches) - 1:
                await asyncio.sleep(self.rate_limit_delay)

        return results

    def _build_classification_prompt(self, notes: Sequence[NoteForClassification], pc_names: Sequence[str]) -> str:
        notes_json = [
            {
                "id": note.id,
                "title": note.title,
                "content": (note.content or "")[:self.classification_content_limit],
                "currentType": note.current_type,
                "linkedTitles": note.existing_links[:MAX_LINKS_IN_PROMPT],
            }
            for note in notes
        ]
        pc_context = PC_CONTEXT_TEMPLATE.format(pc_names=", ".join(pc_names)) if pc_names else ""
        return NOTE_CLASSIFICATION_USER_TEMPLATE.format(
            pc_context=pc_context,
            notes_json=json.dumps(notes_json, indent=2),
        )

    async def _classify_batch(
        self, notes: List[NoteForClassification], pc_names: Sequence[str]
    ) -> List[ClassificationResult]:
        response_text = await self.client.generate_content(
            contents=self._build_classification_prompt(notes, pc_names),
            system_instruction=NOTE_CLASSIFICATION_PROMPT,
            generation_config=self.generation_config,
        )
        return self._parse_classification_response(response_text, notes)

    def _parse_classification_response(
        self, response_text: str, notes: List[NoteForClassification]
    ) -> List[ClassificationResult]:
        parsed = parse_json_safely(response_text)
        if isinstance(parsed, dict):
            parsed = parsed.get("classifications") or parsed.get("results")
        if not isinstance(parsed, list):
            LOGGER.warning(
                "Could not parse classification response, using fallback",
                extra={"batch_size": len(notes)},
            )
            return [self._fallback_classification(note, "Failed to parse AI response") for note in notes]

        by_note_id: Dict[str, ClassificationResult] = {}
        for item in parsed:
            if not isinstance(item, dict) or not item.get("noteId"):
                continue
            by_note_id[str(item["noteId"])] = ClassificationResult(
                note_id=str(item["noteId"]),
                inferred_type=self._coerce_inferred_type(item.get("inferredType")),
                confidence=_clamp(item.get("confidence")),
                explanation=str(item.get("explanation") or ""),
                extracted_entities=[str(e) for e in item.get("extractedEntities") or [] if e],
            )

        # One result per input note, in input order.
        return [
            by_note_id.get(note.id) or self._fallback_classification(note, "Note missing from AI response")
            for note in notes
        ]

    @staticmethod
    def _coerce_inferred_type(value: Any) -> InferredEntityType:
        if isinstance(value, str) and value in _TYPE_ALIASES:
            return _TYPE_ALIASES[value]
        try:
            return InferredEntityType(value)
        except ValueError:
            return InferredEntityType.NOTE

    @staticmethod
    def _fallback_classification(note: NoteForClassification, reason: str) -> ClassificationResult:
        return ClassificationResult(
            note_id=note.id,
            inferred_type=InferredEntityType.NOTE,
            confidence=PARSE_FAILURE_CONFIDENCE,
            explanation=reason,
            extracted_entities=[],
        )

    # ========== RELATIONSHIPS ==========

    async def extract_relationships(
        self,
        notes: Sequence[NoteWithClassification],
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[RelationshipResult]:
        if len(notes) < 2:
            return []

        context_json = json.dumps(
            [{"id": n.id, "title": n.title, "type": n.inferred_type.value} for n in notes],
            indent=2,
        )

        results: List[RelationshipResult] = []
        batches = _chunk(notes, self.batch_size)
        processed = 0
        for index, batch in enumerate(batches):
            results.extend(await self._extract_relationships_batch(batch, context_json))
            processed += len(batch)
            if on_progress:
                on_progress(processed, len(notes), batch[-1].title)
            if index < len(batches) - 1:
                await asyncio.sleep(self.rate_limit_delay)

        return self._deduplicate(results)

    async def _extract_relationships_batch(
        self, batch: List[NoteWithClassification], context_json: str
    ) -> List[RelationshipResult]:
        batch_json = json.dumps(
            [
                {
                    "id": note.id,
                    "title": note.title,
                    "type": note.inferred_type.value,
                    "content": (note.content or "")[:self.relationship_content_limit],
                    "links": [link.model_dump() for link in note.internal_links[:MAX_LINKS_IN_PROMPT]],
                }
                for note in batch
            ],
            indent=2,
        )
        response_text = await self.client.generate_content(
            contents=RELATIONSHIP_EXTRACTION_USER_TEMPLATE.format(
                context_json=context_json, batch_json=batch_json
            ),
            system_instruction=RELATIONSHIP_EXTRACTION_PROMPT,
            generation_config=self.generation_config,
        )
        return self._parse_relationship_response(response_text)

    def _parse_relationship_response(self, response_text: str) -> List[RelationshipResult]:
        parsed = parse_json_safely(response_text)
        if isinstance(parsed, dict):
            parsed = parsed.get("relationships")
        if not isinstance(parsed, list):
            LOGGER.warning("Could not parse relationship response, ignoring batch")
            return []

        results = []
        for item in parsed:
            if not isinstance(item, dict):
                continue
            from_id, to_id = item.get("fromNoteId"), item.get("toNoteId")
            if not from_id or not to_id or from_id == to_id:
                continue
            try:
                relationship_type = RelationshipType(item.get("relationshipType"))
            except ValueError:
                relationship_type = RelationshipType.RELATED
            try:
                evidence_type = EvidenceType(item.get("evidenceType"))
            except ValueError:
                evidence_type = EvidenceType.HEURISTIC

            results.append(RelationshipResult(
                from_note_id=str(from_id),
                to_note_id=str(to_id),
                relationship_type=relationship_type,
                confidence=_clamp(item.get("confidence")),
                evidence_snippet=str(item.get("evidenceSnippet") or ""),
                evidence_type=evidence_type,
            ))
        return results

    @staticmethod
    def _deduplicate(relationships: List[RelationshipResult]) -> List[RelationshipResult]:
        """Keep the first relationship per unordered note pair and type."""
        seen = set()
        unique = []
        for relationship in relationships:
            first, second = sorted((relationship.from_note_id, relationship.to_note_id))
            key = (first, second, relationship.relationship_type)
            if key in seen:
                continue
            seen.add(key)
            unique.append(relationship)
        return unique
