"""Dict-backed storage adapter.

Implements the full ``Storage`` interface in process memory. Records are
copied on the way in and out so callers never share mutable state with
the store.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence, TypeVar

from pydantic import BaseModel

from helm_campaign.core.exceptions import NotFoundError
from helm_campaign.models import (
    AICacheEntry,
    AICacheStats,
    CacheType,
    EnrichmentRun,
    EnrichmentStatus,
    ImportRun,
    ImportRunStatus,
    NeedsReviewItem,
    Note,
    NoteClassification,
    NoteImportSnapshot,
    NoteRelationship,
    NoteType,
    ReviewStatus,
)
from helm_campaign.models.records import utc_now
from helm_campaign.repositories.storage import Storage, coerce_enum, merge_record
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


def _copy(record: RecordT) -> RecordT:
    return record.model_copy(deep=True)


class InMemoryStorage(Storage):
    """In-memory implementation of ``Storage``."""

    def __init__(self):
        self.notes: Dict[str, Note] = {}
        self.import_runs: Dict[str, ImportRun] = {}
        self.snapshots: Dict[str, NoteImportSnapshot] = {}
        self.enrichment_runs: Dict[str, EnrichmentRun] = {}
        self.classifications: Dict[str, NoteClassification] = {}
        self.relationships: Dict[str, NoteRelationship] = {}
        self.ai_cache: Dict[str, AICacheEntry] = {}

    def _require(self, table: Dict[str, RecordT], record_id: str, kind: str) -> RecordT:
        record = table.get(record_id)
        if record is None:
            raise NotFoundError(f"{kind} {record_id} not found")
        return record

    # ========== NOTES ==========

    async def create_note(self, note: Note) -> Note:
        self.notes[note.id] = _copy(note)
        return _copy(note)

    async def get_note(self, note_id: str) -> Optional[Note]:
        note = self.notes.get(note_id)
        return _copy(note) if note else None

    async def update_note(self, note_id: str, **updates: Any) -> Note:
        note = self._require(self.notes, note_id, "Note")
        updated = merge_record(note, updates)
        self.notes[note_id] = updated
        return _copy(updated)

    async def delete_note(self, note_id: str) -> bool:
        return self.notes.pop(note_id, None) is not None

    async def get_notes_by_team(self, team_id: str) -> List[Note]:
        return [_copy(n) for n in self.notes.values() if n.team_id == team_id]

    async def get_notes_by_import_run(self, import_run_id: str) -> List[Note]:
        return [_copy(n) for n in self.notes.values() if n.import_run_id == import_run_id]

    async def find_note_by_source_id(
        self, team_id: str, source_system: str, source_page_id: str
    ) -> Optional[Note]:
        for note in self.notes.values():
            if (
                note.team_id == team_id
                and note.source_system == source_system
                and note.source_page_id == source_page_id
            ):
                return _copy(note)
        return None

    async def find_or_create_session_log(
        self,
        team_id: str,
        session_date: date,
        title: str,
        created_by_user_id: Optional[str] = None,
    ) -> Note:
        # No await between lookup and insert, so concurrent callers on the
        # same event loop cannot interleave here.
        for note in self.notes.values():
            if (
                note.team_id == team_id
                and note.note_type == NoteType.SESSION_LOG
                and note.session_date == session_date
            ):
                return _copy(note)

        note = Note(
            team_id=team_id,
            title=title,
            note_type=NoteType.SESSION_LOG,
            session_date=session_date,
            created_by_user_id=created_by_user_id,
            updated_by_user_id=created_by_user_id,
        )
        self.notes[note.id] = _copy(note)
        return _copy(note)

    # ========== IMPORT RUNS ==========

    async def create_import_run(self, run: ImportRun) -> ImportRun:
        self.import_runs[run.id] = _copy(run)
        return _copy(run)

    async def get_import_run(self, import_run_id: str) -> Optional[ImportRun]:
        run = self.import_runs.get(import_run_id)
        return _copy(run) if run else None

    async def update_import_run(self, import_run_id: str, **updates: Any) -> ImportRun:
        run = self._require(self.import_runs, import_run_id, "ImportRun")
        updated = merge_record(run, updates)
        self.import_runs[import_run_id] = updated
        return _copy(updated)

    async def update_import_run_status(self, import_run_id: str, status: ImportRunStatus) -> ImportRun:
        return await self.update_import_run(
            import_run_id, status=coerce_enum(ImportRunStatus, status, "import run status")
        )

    # ========== IMPORT SNAPSHOTS ==========

    async def create_note_import_snapshot(self, snapshot: NoteImportSnapshot) -> NoteImportSnapshot:
        self.snapshots[snapshot.id] = _copy(snapshot)
        return _copy(snapshot)

    async def get_snapshots_by_import_run(self, import_run_id: str) -> List[NoteImportSnapshot]:
        return [_copy(s) for s in self.snapshots.values() if s.import_run_id == import_run_id]

    async def restore_note_from_snapshot(self, snapshot_id: str) -> Note:
        snapshot = self._require(self.snapshots, snapshot_id, "NoteImportSnapshot")
        return await self.update_note(
            snapshot.note_id,
            title=snapshot.previous_title,
            content=snapshot.previous_content or "",
            note_type=snapshot.previous_note_type,
            quest_status=snapshot.previous_quest_status,
            content_markdown=snapshot.previous_content_markdown,
            content_markdown_resolved=snapshot.previous_content_markdown_resolved,
            is_private=snapshot.previous_is_private,
            import_run_id=None,
        )

    async def delete_snapshots_by_import_run(self, import_run_id: str) -> int:
        doomed = [sid for sid, s in self.snapshots.items() if s.import_run_id == import_run_id]
        for sid in doomed:
            del self.snapshots[sid]
        return len(doomed)

    # ========== ENRICHMENT RUNS ==========

    async def create_enrichment_run(self, run: EnrichmentRun) -> EnrichmentRun:
        self.enrichment_runs[run.id] = _copy(run)
        return _copy(run)

    async def get_enrichment_run(self, enrichment_run_id: str) -> Optional[EnrichmentRun]:
        run = self.enrichment_runs.get(enrichment_run_id)
        return _copy(run) if run else None

    async def update_enrichment_run(self, enrichment_run_id: str, **updates: Any) -> EnrichmentRun:
        run = self._require(self.enrichment_runs, enrichment_run_id, "EnrichmentRun")
        updated = merge_record(run, updates)
        self.enrichment_runs[enrichment_run_id] = updated
        return _copy(updated)

    async def update_enrichment_run_status(
        self, enrichment_run_id: str, status: EnrichmentStatus
    ) -> EnrichmentRun:
        status = coerce_enum(EnrichmentStatus, status, "enrichment status")
        updates: Dict[str, Any] = {"status": status}
        if status == EnrichmentStatus.RUNNING:
            updates["started_at"] = utc_now()
        elif status in (EnrichmentStatus.COMPLETED, EnrichmentStatus.FAILED):
            updates["completed_at"] = utc_now()
        return await self.update_enrichment_run(enrichment_run_id, **updates)

    # ========== CLASSIFICATIONS ==========

    async def create_note_classification(self, classification: NoteClassification) -> NoteClassification:
        self.classifications[classification.id] = _copy(classification)
        return _copy(classification)

    async def get_note_classification(self, classification_id: str) -> Optional[NoteClassification]:
        classification = self.classifications.get(classification_id)
        return _copy(classification) if classification else None

    async def get_note_classifications_by_enrichment_run(
        self, enrichment_run_id: str
    ) -> List[NoteClassification]:
        return [
            _copy(c) for c in self.classifications.values()
            if c.enrichment_run_id == enrichment_run_id
        ]

    async def get_current_note_classification(self, note_id: str) -> Optional[NoteClassification]:
        # Dicts keep insertion order, so the last match is the newest.
        current = None
        for classification in self.classifications.values():
            if classification.note_id == note_id:
                current = classification
        return _copy(current) if current else None

    async def update_note_classification_status(
        self, classification_id: str, status: ReviewStatus, user_id: Optional[str]
    ) -> NoteClassification:
        classification = self._require(self.classifications, classification_id, "NoteClassification")
        status = coerce_enum(ReviewStatus, status, "classification status")
        updated = merge_record(classification, {
            "status": status,
            "approved_by_user_id": user_id if status == ReviewStatus.APPROVED else None,
        })
        self.classifications[classification_id] = updated
        return _copy(updated)

    async def bulk_update_classification_status(
        self, classification_ids: Sequence[str], status: ReviewStatus, user_id: Optional[str]
    ) -> int:
        count = 0
        for classification_id in classification_ids:
            if classification_id in self.classifications:
                await self.update_note_classification_status(classification_id, status, user_id)
                count += 1
        return count

    async def delete_classifications_by_enrichment_run(self, enrichment_run_id: str) -> int:
        doomed = [
            cid for cid, c in self.classifications.items()
            if c.enrichment_run_id == enrichment_run_id
        ]
        for cid in doomed:
            del self.classifications[cid]
        return len(doomed)

    async def get_pending_low_confidence_classifications(
        self, team_id: str, threshold: float
    ) -> List[NeedsReviewItem]:
        items = []
        for classification in self.classifications.values():
            if classification.status != ReviewStatus.PENDING or classification.confidence >= threshold:
                continue
            note = self.notes.get(classification.note_id)
            if note is None or note.team_id != team_id:
                continue
            items.append(NeedsReviewItem(
                classification_id=classification.id,
                note_id=note.id,
                note_title=note.title,
                inferred_type=classification.inferred_type,
                confidence=classification.confidence,
                explanation=classification.explanation,
            ))
        return sorted(items, key=lambda item: item.confidence)

    # ========== RELATIONSHIPS ==========

    async def create_note_relationship(self, relationship: NoteRelationship) -> NoteRelationship:
        self.relationships[relationship.id] = _copy(relationship)
        return _copy(relationship)

    async def get_note_relationship(self, relationship_id: str) -> Optional[NoteRelationship]:
        relationship = self.relationships.get(relationship_id)
        return _copy(relationship) if relationship else None

    async def get_note_relationships_by_enrichment_run(
        self, enrichment_run_id: str
    ) -> List[NoteRelationship]:
        return [
            _copy(r) for r in self.relationships.values()
            if r.enrichment_run_id == enrichment_run_id
        ]

    async def update_note_relationship_status(
        self, relationship_id: str, status: ReviewStatus, user_id: Optional[str]
    ) -> NoteRelationship:
        relationship = self._require(self.relationships, relationship_id, "NoteRelationship")
        status = coerce_enum(ReviewStatus, status, "relationship status")
        updated = merge_record(relationship, {
            "status": status,
            "approved_by_user_id": user_id if status == ReviewStatus.APPROVED else None,
        })
        self.relationships[relationship_id] = updated
        return _copy(updated)

    async def bulk_update_relationship_status(
        self, relationship_ids: Sequence[str], status: ReviewStatus, user_id: Optional[str]
    ) -> int:
        count = 0
        for relationship_id in relationship_ids:
            if relationship_id in self.relationships:
                await self.update_note_relationship_status(relationship_id, status, user_id)
                count += 1
        return count

    async def delete_relationships_by_enrichment_run(self, enrichment_run_id: str) -> int:
        doomed = [
            rid for rid, r in self.relationships.items()
            if r.enrichment_run_id == enrichment_run_id
        ]
        for rid in doomed:
            del self.relationships[rid]
        return len(doomed)

    # ========== AI CACHE ==========

    def _matches_key(
        self,
        entry: AICacheEntry,
        cache_type: CacheType,
        algorithm_version: str,
        context_hash: Optional[str],
        team_id: str,
    ) -> bool:
        return (
            entry.cache_type == cache_type
            and entry.algorithm_version == algorithm_version
            and entry.context_hash == context_hash
            and entry.team_id == team_id
        )

    async def get_ai_cache_entry(
        self,
        cache_type: CacheType,
        content_hash: str,
        algorithm_version: str,
        context_hash: Optional[str],
        team_id: str,
    ) -> Optional[AICacheEntry]:
        for entry in self.ai_cache.values():
            if entry.content_hash == content_hash and self._matches_key(
                entry, cache_type, algorithm_version, context_hash, team_id
            ):
                return _copy(entry)
        return None

    async def get_ai_cache_entries_batch(
        self,
        cache_type: CacheType,
        content_hashes: Sequence[str],
        algorithm_version: str,
        context_hash: Optional[str],
        team_id: str,
    ) -> List[AICacheEntry]:
        wanted = set(content_hashes)
        return [
            _copy(entry) for entry in self.ai_cache.values()
            if entry.content_hash in wanted
            and self._matches_key(entry, cache_type, algorithm_version, context_hash, team_id)
        ]

    async def set_ai_cache_entry(self, entry: AICacheEntry) -> AICacheEntry:
        existing = await self.get_ai_cache_entry(
            entry.cache_type, entry.content_hash, entry.algorithm_version, entry.context_hash, entry.team_id
        )
        if existing is not None:
            stored = merge_record(self.ai_cache[existing.id], {
                "result": entry.result,
                "model_id": entry.model_id,
                "tokens_saved": entry.tokens_saved,
                "expires_at": entry.expires_at,
            })
        else:
            stored = _copy(entry)
        self.ai_cache[stored.id] = stored
        return _copy(stored)

    async def increment_ai_cache_hit_count(self, entry_id: str) -> None:
        entry = self.ai_cache.get(entry_id)
        if entry is None:
            return
        self.ai_cache[entry_id] = merge_record(entry, {
            "hit_count": entry.hit_count + 1,
            "last_hit_at": utc_now(),
        })

    async def delete_ai_cache_by_version(self, cache_type: CacheType, algorithm_version: str) -> int:
        doomed = [
            eid for eid, e in self.ai_cache.items()
            if e.cache_type == cache_type and e.algorithm_version == algorithm_version
        ]
        for eid in doomed:
            del self.ai_cache[eid]
        return len(doomed)

    async def delete_ai_cache_by_team(self, team_id: str) -> int:
        doomed = [eid for eid, e in self.ai_cache.items() if e.team_id == team_id]
        for eid in doomed:
            del self.ai_cache[eid]
        return len(doomed)

    async def delete_expired_ai_cache_entries(self) -> int:
        now = utc_now()
        doomed = [eid for eid, e in self.ai_cache.items() if e.expires_at <= now]
        for eid in doomed:
            del self.ai_cache[eid]
        if doomed:
            LOGGER.info("Pruned expired AI cache entries", extra={"count": len(doomed)})
        return len(doomed)

    async def get_ai_cache_stats(self, expiring_within: timedelta) -> AICacheStats:
        entries = list(self.ai_cache.values())
        if not entries:
            return AICacheStats()

        by_type: Dict[str, int] = {}
        for entry in entries:
            key = CacheType(entry.cache_type).value
            by_type[key] = by_type.get(key, 0) + 1

        now = utc_now()
        soon = now + expiring_within
        return AICacheStats(
            total_entries=len(entries),
            entries_by_type=by_type,
            total_hits=sum(e.hit_count for e in entries),
            oldest_entry=min(e.created_at for e in entries),
            newest_entry=max(e.created_at for e in entries),
            entries_expiring_soon=sum(1 for e in entries if now < e.expires_at <= soon),
        )
