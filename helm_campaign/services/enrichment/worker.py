"""In-process enrichment job queue.

Jobs run strictly one at a time in FIFO order. Each job classifies the notes
of one import run, extracts relationships between them and persists both as
pending review records on its enrichment run.

The queue lives in memory only: jobs still queued or running when the process
exits are lost, and running several processes needs an external broker.
"""

import asyncio
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Deque, Dict, List, Optional, Sequence, Tuple, TypeVar

from helm_campaign.core.config import settings
from helm_campaign.core.exceptions import ProviderTimeoutError
from helm_campaign.models import (
    EnrichmentStatus,
    EnrichmentTotals,
    Note,
    NoteClassification,
    NoteRelationship,
    NoteType,
)
from helm_campaign.models.ai_models import (
    ClassificationOptions,
    ClassificationResult,
    InternalLink,
    NoteForClassification,
    NoteWithClassification,
    RelationshipResult,
)
from helm_campaign.models.enums import InferredEntityType
from helm_campaign.repositories.storage import Storage
from helm_campaign.services.ai.ai_cache import AICache
from helm_campaign.services.ai.provider import AIProvider, ProgressCallback
from helm_campaign.services.ai.type_mapping import (
    HIGH_CONFIDENCE_THRESHOLD,
    REVIEW_THRESHOLD,
    map_note_type_to_inferred_type,
)
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

SETTLED_NOTE_TYPES = frozenset({
    NoteType.CHARACTER,
    NoteType.NPC,
    NoteType.POI,
    NoteType.QUEST,
})

_INTERNAL_LINK_RE = re.compile(r"\[([^\]]+)\]\(/notes/([^)]+)\)")


@dataclass
class EnrichmentJob:
    enrichment_run_id: str
    import_run_id: str
    team_id: str
    override_existing: bool = False
    player_character_names: Sequence[str] = field(default_factory=tuple)


# ========== NOTE PREPARATION ==========

def prepare_notes_for_classification(
    notes: Sequence[Note], override_existing: bool = False
) -> List[NoteForClassification]:
    """Notes to send for classification.

    Notes already typed as character, npc, poi or quest are skipped unless
    ``override_existing`` is set.
    """
    titles_by_id = {note.id: note.title for note in notes}
    prepared = []
    for note in notes:
        if not override_existing and note.note_type in SETTLED_NOTE_TYPES:
            continue
        prepared.append(NoteForClassification(
            id=note.id,
            title=note.title,
            content=note.content or note.content_markdown or "",
            current_type=note.note_type.value,
            existing_links=[titles_by_id.get(linked_id, linked_id) for linked_id in note.linked_note_ids],
        ))
    return prepared


def extract_internal_links(note: Note, notes_by_id: Dict[str, Note]) -> List[InternalLink]:
    """Links from ``note`` to other notes in ``notes_by_id``, one per target.

    Sources are ``[text](/notes/<id>)`` spans in the note's markdown followed
    by its ``linked_note_ids``.
    """
    content = note.content_markdown_resolved or note.content_markdown or note.content or ""
    links: List[InternalLink] = []
    seen = set()

    for link_text, target_id in _INTERNAL_LINK_RE.findall(content):
        if target_id in notes_by_id and target_id not in seen:
            seen.add(target_id)
            links.append(InternalLink(target_note_id=target_id, link_text=link_text))

    for target_id in note.linked_note_ids:
        if target_id in notes_by_id and target_id not in seen:
            seen.add(target_id)
            links.append(InternalLink(target_note_id=target_id, link_text=notes_by_id[target_id].title))

    return links


def prepare_notes_for_relationships(
    notes: Sequence[Note], classifications: Sequence[ClassificationResult]
) -> List[NoteWithClassification]:
    """Classified view of every note; unclassified notes keep their existing type."""
    inferred_by_id = {result.note_id: result.inferred_type for result in classifications}
    notes_by_id = {note.id: note for note in notes}

    return [
        NoteWithClassification(
            id=note.id,
            title=note.title,
            content=note.content or note.content_markdown or "",
            inferred_type=inferred_by_id.get(note.id) or map_note_type_to_inferred_type(note.note_type),
            internal_links=extract_internal_links(note, notes_by_id),
        )
        for note in notes
    ]


def _fallback_classification(note: NoteForClassification) -> ClassificationResult:
    return ClassificationResult(
        note_id=note.id,
        inferred_type=InferredEntityType.NOTE,
        confidence=0.0,
        explanation="No classification result returned",
        extracted_entities=[],
    )


class EnrichmentWorker:
    """Sequential processor for enrichment jobs.

    Args:
        storage: Storage adapter for notes and enrichment records
        provider: AI provider used for classification and relationships
        cache: Optional AI cache consulted before classification calls
        provider_timeout: Seconds allowed per provider call, defaults to
            ``ENRICHMENT_PROVIDER_TIMEOUT_SECONDS``
    """

    def __init__(
        self,
        storage: Storage,
        provider: AIProvider,
        cache: Optional[AICache] = None,
        provider_timeout: Optional[float] = None,
    ):
        self.storage = storage
        self.provider = provider
        self.cache = cache
        self.provider_timeout = (
            provider_timeout if provider_timeout is not None
            else settings.enrichment.provider_timeout_seconds
        )
        self._queue: Deque[EnrichmentJob] = deque()
        self._busy = False
        self._drain_task: Optional[asyncio.Task] = None

    # ========== QUEUE ==========

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def is_busy(self) -> bool:
        return self._busy

    def enqueue(self, job: EnrichmentJob) -> None:
        """Append a job and start draining if the worker is idle.

        Outside a running event loop the job just waits for ``start()`` or
        ``drain()``.
        """
        self._queue.append(job)
        LOGGER.info(
            "Enrichment job enqueued",
            extra={"enrichment_run_id": job.enrichment_run_id, "queue_length": len(self._queue)},
        )
        self.start()

    def start(self) -> None:
        if self._busy or not self._queue:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._drain_task = loop.create_task(self.drain())

    async def drain(self) -> None:
        """Process queued jobs until the queue is empty."""
        if self._busy:
            return
        self._busy = True
        try:
            while self._queue:
                await self._run_job(self._queue.popleft())
        finally:
            self._busy = False

    async def wait_idle(self) -> None:
        """Wait until the background drain task has emptied the queue."""
        while self._drain_task is not None and not self._drain_task.done():
            await self._drain_task

    def clear(self) -> None:
        """Drop queued jobs. A job already running is not interrupted."""
        dropped = len(self._queue)
        self._queue.clear()
        if dropped:
            LOGGER.info("Cleared enrichment queue", extra={"dropped_jobs": dropped})

    async def _run_job(self, job: EnrichmentJob) -> None:
        try:
            await self.process_job(job)
        except Exception as e:
            LOGGER.error(
                f"Enrichment job failed: {e}",
                exc_info=True,
                extra={"enrichment_run_id": job.enrichment_run_id},
            )
            await self._mark_failed(job, str(e) or type(e).__name__)

    async def _mark_failed(self, job: EnrichmentJob, error_message: str) -> None:
        try:
            await self.storage.update_enrichment_run(
                job.enrichment_run_id,
                status=EnrichmentStatus.FAILED,
                error_message=error_message,
            )
            await self.storage.update_enrichment_run_status(job.enrichment_run_id, EnrichmentStatus.FAILED)
        except Exception as e:
            # The queue keeps draining even when the run record cannot be updated.
            LOGGER.error(
                f"Failed to mark enrichment run as failed: {e}",
                exc_info=True,
                extra={"enrichment_run_id": job.enrichment_run_id},
            )

    # ========== PIPELINE ==========

    async def process_job(self, job: EnrichmentJob) -> EnrichmentTotals:
        """Run the full pipeline for one job. Errors propagate to the caller."""
        run_id = job.enrichment_run_id
        await self.storage.update_enrichment_run_status(run_id, EnrichmentStatus.RUNNING)

        notes = await self.storage.get_notes_by_import_run(job.import_run_id)
        if not notes:
            LOGGER.info("No notes to enrich", extra={"enrichment_run_id": run_id})
            return await self._complete(run_id, EnrichmentTotals())

        LOGGER.info(
            "Starting enrichment",
            extra={
                "enrichment_run_id": run_id,
                "import_run_id": job.import_run_id,
                "note_count": len(notes),
                "provider": self.provider.name,
            },
        )

        classifications = await self._classify(job, notes)

        high_count = 0
        low_count = 0
        review_count = 0
        for result in classifications:
            await self.storage.create_note_classification(NoteClassification(
                note_id=result.note_id,
                enrichment_run_id=run_id,
                inferred_type=result.inferred_type,
                confidence=result.confidence,
                explanation=result.explanation,
                extracted_entities=result.extracted_entities,
            ))
            high_count, low_count, review_count = self._tally(result.confidence, high_count, low_count, review_count)

        relationships = await self._extract_relationships(notes, classifications)
        notes_by_id = {note.id: note for note in notes}
        relationships_found = 0
        for result in relationships:
            if result.from_note_id not in notes_by_id or result.to_note_id not in notes_by_id:
                LOGGER.warning(
                    "Dropping relationship with unknown endpoint",
                    extra={
                        "enrichment_run_id": run_id,
                        "from_note_id": result.from_note_id,
                        "to_note_id": result.to_note_id,
                    },
                )
                continue
            await self.storage.create_note_relationship(NoteRelationship(
                enrichment_run_id=run_id,
                from_note_id=result.from_note_id,
                to_note_id=result.to_note_id,
                relationship_type=result.relationship_type,
                confidence=result.confidence,
                evidence_snippet=result.evidence_snippet,
                evidence_type=result.evidence_type,
            ))
            relationships_found += 1
            high_count, low_count, review_count = self._tally(result.confidence, high_count, low_count, review_count)

        totals = EnrichmentTotals(
            notes_processed=len(notes),
            classifications_created=len(classifications),
            relationships_found=relationships_found,
            high_confidence_count=high_count,
            low_confidence_count=low_count,
            user_review_required=review_count,
        )
        return await self._complete(run_id, totals)

    @staticmethod
    def _tally(confidence: float, high: int, low: int, review: int) -> Tuple[int, int, int]:
        if confidence >= HIGH_CONFIDENCE_THRESHOLD:
            high += 1
        elif confidence < REVIEW_THRESHOLD:
            low += 1
            review += 1
        return high, low, review

    async def _complete(self, run_id: str, totals: EnrichmentTotals) -> EnrichmentTotals:
        await self.storage.update_enrichment_run(run_id, totals=totals)
        await self.storage.update_enrichment_run_status(run_id, EnrichmentStatus.COMPLETED)
        LOGGER.info(
            "Enrichment completed",
            extra={"enrichment_run_id": run_id, **totals.model_dump()},
        )
        return totals

    async def _call_provider(self, call: Awaitable[T], phase: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.provider_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                f"AI provider {phase} timed out after {self.provider_timeout}s", e
            ) from e

    def _progress_logger(self, phase: str) -> ProgressCallback:
        def log_progress(current: int, total: int, item: Optional[str]) -> None:
            LOGGER.debug(
                f"Enrichment {phase} progress {current}/{total}",
                extra={"current_item": item},
            )
        return log_progress

    # ========== CLASSIFICATION ==========

    async def _classify(self, job: EnrichmentJob, notes: Sequence[Note]) -> List[ClassificationResult]:
        candidates = prepare_notes_for_classification(notes, job.override_existing)
        if not candidates:
            return []

        pc_names = list(job.player_character_names)
        cached = await self._cached_classifications(candidates, pc_names, job.team_id)
        misses = [note for note in candidates if note.id not in cached]

        fresh: Dict[str, ClassificationResult] = {}
        if misses:
            results = await self._call_provider(
                self.provider.classify_notes(
                    misses,
                    on_progress=self._progress_logger("classification"),
                    options=ClassificationOptions(player_character_names=pc_names),
                ),
                "classification",
            )
            fresh = {result.note_id: result for result in results}
            await self._cache_classifications(misses, fresh, pc_names, job.team_id)

        LOGGER.info(
            "Classification phase finished",
            extra={
                "enrichment_run_id": job.enrichment_run_id,
                "candidates": len(candidates),
                "cache_hits": len(cached),
                "provider_results": len(fresh),
            },
        )
        return [
            cached.get(note.id) or fresh.get(note.id) or _fallback_classification(note)
            for note in candidates
        ]

    async def _cached_classifications(
        self, notes: List[NoteForClassification], pc_names: List[str], team_id: str
    ) -> Dict[str, ClassificationResult]:
        if self.cache is None:
            return {}
        try:
            return await self.cache.get_classifications_batch(notes, pc_names, team_id)
        except Exception as e:
            LOGGER.warning(f"AI cache lookup failed, classifying all notes: {e}", extra={"team_id": team_id})
            return {}

    async def _cache_classifications(
        self,
        notes: List[NoteForClassification],
        results: Dict[str, ClassificationResult],
        pc_names: List[str],
        team_id: str,
    ) -> None:
        if self.cache is None:
            return
        for note in notes:
            result = results.get(note.id)
            if result is None:
                continue
            try:
                await self.cache.set_classification(note, pc_names, result, team_id)
            except Exception as e:
                LOGGER.warning(
                    f"Failed to cache classification: {e}",
                    extra={"note_id": note.id, "team_id": team_id},
                )

    # ========== RELATIONSHIPS ==========

    async def _extract_relationships(
        self, notes: Sequence[Note], classifications: Sequence[ClassificationResult]
    ) -> List[RelationshipResult]:
        classified = prepare_notes_for_relationships(notes, classifications)
        return await self._call_provider(
            self.provider.extract_relationships(
                classified, on_progress=self._progress_logger("relationships")
            ),
            "relationship extraction",
        )
