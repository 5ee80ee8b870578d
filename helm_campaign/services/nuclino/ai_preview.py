"""AI-enhanced dry run of a Nuclino import.

Classifies the pages of a processed export with an ``AIProvider`` and
compares the result with the heuristic classification, without writing
any notes. Collection pages are not sent to the provider: they are index
pages and stay ``Note``.
"""

import asyncio
from typing import Awaitable, Dict, List, Optional, Sequence, TypeVar

from helm_campaign.core.config import settings
from helm_campaign.core.exceptions import ProviderTimeoutError
from helm_campaign.models.ai_models import (
    ClassificationOptions,
    ClassificationResult,
    InternalLink,
    NoteForClassification,
    NoteWithClassification,
)
from helm_campaign.models.ai_preview import (
    AIClassification,
    AIEnhancedSummary,
    AIImportPreview,
    AIRelationship,
    BaselineClassification,
    BaselineSummary,
    DiffStats,
)
from helm_campaign.models.enums import InferredEntityType, NoteType, QuestStatus
from helm_campaign.models.nuclino import ImportSummary, NuclinoPage, ProcessedExport
from helm_campaign.services.ai.ai_cache import AICache
from helm_campaign.services.ai.provider import AIProvider
from helm_campaign.services.ai.type_mapping import (
    CONFIDENCE_THRESHOLDS,
    are_types_equivalent,
    map_note_type_to_inferred_type,
)
from helm_campaign.services.nuclino.parser import is_collection_page
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

COLLECTION_PAGE_CONFIDENCE = 0.85
UNANALYZED_CONFIDENCE = 0.5


def build_baseline_summary(summary: ImportSummary) -> BaselineSummary:
    return BaselineSummary(
        total=summary.total_pages,
        characters=summary.characters,
        npcs=summary.npcs,
        pois=summary.pois,
        quests_open=summary.quests_open,
        quests_done=summary.quests_done,
        notes=summary.notes,
        empty=summary.empty_pages,
    )


def summarize_ai_results(
    total_pages: int,
    classifications: Sequence[AIClassification],
    relationships: Sequence[AIRelationship],
) -> AIEnhancedSummary:
    """Count AI types and bucket relationships by confidence."""
    counts: Dict[InferredEntityType, int] = {}
    for item in classifications:
        counts[item.inferred_type] = counts.get(item.inferred_type, 0) + 1

    high = CONFIDENCE_THRESHOLDS["HIGH"]
    review = CONFIDENCE_THRESHOLDS["REVIEW"]
    low = CONFIDENCE_THRESHOLDS["LOW"]

    return AIEnhancedSummary(
        total=total_pages,
        npcs=counts.get(InferredEntityType.NPC, 0),
        areas=counts.get(InferredEntityType.AREA, 0),
        quests=counts.get(InferredEntityType.QUEST, 0),
        characters=counts.get(InferredEntityType.CHARACTER, 0),
        session_logs=counts.get(InferredEntityType.SESSION_LOG, 0),
        notes=counts.get(InferredEntityType.NOTE, 0),
        relationships_total=len(relationships),
        relationships_high=sum(1 for rel in relationships if rel.confidence >= high),
        relationships_medium=sum(1 for rel in relationships if review <= rel.confidence < high),
        relationships_low=sum(1 for rel in relationships if low <= rel.confidence < review),
    )


def compute_diff_stats(
    baseline: Sequence[BaselineClassification],
    ai_classifications: Sequence[AIClassification],
    total_pages: int,
) -> DiffStats:
    baseline_by_id = {item.source_page_id: item for item in baseline}
    diff = DiffStats(total_pages=total_pages)
    for item in ai_classifications:
        base = baseline_by_id.get(item.source_page_id)
        if base is None:
            continue
        if are_types_equivalent(item.inferred_type, base.note_type):
            diff.upgraded_count += 1
        else:
            diff.changed_count += 1
    return diff


class AIPreviewService:
    """Builds an ``AIImportPreview`` for a processed export.

    Args:
        provider: AI provider used for classification and relationships
        cache: Optional AI cache consulted before classification calls
        provider_timeout: Seconds allowed per provider call, defaults to
            ``ENRICHMENT_PROVIDER_TIMEOUT_SECONDS``
    """

    def __init__(
        self,
        provider: AIProvider,
        cache: Optional[AICache] = None,
        provider_timeout: Optional[float] = None,
    ):
        self.provider = provider
        self.cache = cache
        self.provider_timeout = (
            provider_timeout if provider_timeout is not None
            else settings.enrichment.provider_timeout_seconds
        )

    async def preview(
        self,
        processed: ProcessedExport,
        team_id: str,
        player_character_names: Sequence[str] = (),
    ) -> AIImportPreview:
        """Classify the export with AI and diff it against the baseline.

        Args:
            processed: Output of ``process_nuclino_export``
            team_id: Team whose AI cache entries may be reused
            player_character_names: Names the provider should treat as PCs

        Returns:
            AIImportPreview keyed by source page ID

        Raises:
            ProviderTimeoutError: If a provider call exceeds the timeout
            APIClientError: If the AI service fails
        """
        pc_names = list(dict.fromkeys(player_character_names))
        titles = {page.source_page_id: page.title for page in processed.pages}

        baseline = [
            BaselineClassification(
                source_page_id=page.source_page_id,
                title=page.title,
                note_type=self._baseline_type(processed, page),
                quest_status=self._baseline_quest_status(processed, page),
                is_empty=page.is_empty,
            )
            for page in processed.pages
        ]

        index_pages = {
            page.source_page_id for page in processed.pages
            if not page.is_empty and is_collection_page(page.content, page.links)
        }
        candidates = [
            NoteForClassification(
                id=page.source_page_id,
                title=page.title,
                content=page.content or page.content_raw or "",
                current_type=self._baseline_type(processed, page).value,
                existing_links=[link.text for link in page.links],
            )
            for page in processed.pages
            if not page.is_empty and page.source_page_id not in index_pages
        ]

        results = await self._classify(candidates, pc_names, team_id)
        ai_classifications = [
            self._ai_classification(
                processed, page, results.get(page.source_page_id), page.source_page_id in index_pages
            )
            for page in processed.pages
        ]

        relationship_notes = [
            NoteWithClassification(
                id=page.source_page_id,
                title=page.title,
                content=page.content or page.content_raw or "",
                inferred_type=(
                    results[page.source_page_id].inferred_type if page.source_page_id in results
                    else map_note_type_to_inferred_type(self._baseline_type(processed, page))
                ),
                internal_links=[
                    InternalLink(target_note_id=link.target_page_id, link_text=link.text)
                    for link in page.links
                ],
            )
            for page in processed.pages
            if not page.is_empty
        ]
        relationship_results = await self._call_provider(
            self.provider.extract_relationships(relationship_notes),
            "relationship extraction",
        )

        relationships: List[AIRelationship] = []
        for result in relationship_results:
            if result.from_note_id not in titles or result.to_note_id not in titles:
                LOGGER.warning(
                    "Dropping preview relationship with unknown endpoint",
                    extra={"from_page_id": result.from_note_id, "to_page_id": result.to_note_id},
                )
                continue
            relationships.append(AIRelationship(
                from_page_id=result.from_note_id,
                from_title=titles[result.from_note_id],
                to_page_id=result.to_note_id,
                to_title=titles[result.to_note_id],
                relationship_type=result.relationship_type,
                confidence=result.confidence,
                evidence_snippet=result.evidence_snippet,
                evidence_type=result.evidence_type,
            ))

        total_pages = processed.summary.total_pages
        preview = AIImportPreview(
            baseline_summary=build_baseline_summary(processed.summary),
            baseline_classifications=baseline,
            ai_summary=summarize_ai_results(total_pages, ai_classifications, relationships),
            ai_classifications=ai_classifications,
            relationships=relationships,
            diff=compute_diff_stats(baseline, ai_classifications, total_pages),
        )

        LOGGER.info(
            "AI import preview built",
            extra={
                "team_id": team_id,
                "pages": total_pages,
                "sent_to_provider": len(candidates),
                "changed": preview.diff.changed_count,
                "relationships": len(relationships),
            },
        )
        return preview

    @staticmethod
    def _baseline_type(processed: ProcessedExport, page: NuclinoPage) -> NoteType:
        classification = processed.classifications.get(page.source_page_id)
        return classification.note_type if classification else NoteType.NOTE

    @staticmethod
    def _baseline_quest_status(processed: ProcessedExport, page: NuclinoPage) -> Optional[QuestStatus]:
        classification = processed.classifications.get(page.source_page_id)
        return classification.quest_status if classification else None

    def _ai_classification(
        self,
        processed: ProcessedExport,
        page: NuclinoPage,
        result: Optional[ClassificationResult],
        is_index_page: bool,
    ) -> AIClassification:
        if is_index_page:
            return AIClassification(
                source_page_id=page.source_page_id,
                title=page.title,
                inferred_type=InferredEntityType.NOTE,
                confidence=COLLECTION_PAGE_CONFIDENCE,
                explanation="Index page that mostly links to other pages",
            )
        if result is not None:
            return AIClassification(
                source_page_id=page.source_page_id,
                title=page.title,
                inferred_type=result.inferred_type,
                confidence=result.confidence,
                explanation=result.explanation,
                extracted_entities=result.extracted_entities,
            )
        return AIClassification(
            source_page_id=page.source_page_id,
            title=page.title,
            inferred_type=map_note_type_to_inferred_type(self._baseline_type(processed, page)),
            confidence=UNANALYZED_CONFIDENCE,
            explanation="Not analyzed by AI",
        )

    async def _call_provider(self, call: Awaitable[T], phase: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.provider_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"AI provider {phase} timed out after {self.provider_timeout}s", e
            ) from e

    async def _classify(
        self, candidates: List[NoteForClassification], pc_names: List[str], team_id: str
    ) -> Dict[str, ClassificationResult]:
        if not candidates:
            return {}

        cached: Dict[str, ClassificationResult] = {}
        if self.cache is not None:
            try:
                cached = await self.cache.get_classifications_batch(candidates, pc_names, team_id)
            except Exception as e:
                LOGGER.warning(f"AI cache lookup failed during preview: {e}", extra={"team_id": team_id})

        misses = [note for note in candidates if note.id not in cached]
        if not misses:
            return cached

        results = await self._call_provider(
            self.provider.classify_notes(
                misses, options=ClassificationOptions(player_character_names=pc_names)
            ),
            "classification",
        )
        fresh = {result.note_id: result for result in results}

        if self.cache is not None:
            for note in misses:
                result = fresh.get(note.id)
                if result is None:
                    continue
                try:
                    await self.cache.set_classification(note, pc_names, result, team_id)
                except Exception as e:
                    LOGGER.warning(
                        f"Failed to cache preview classification: {e}",
                        extra={"source_page_id": note.id, "team_id": team_id},
                    )

        return {**fresh, **cached}
