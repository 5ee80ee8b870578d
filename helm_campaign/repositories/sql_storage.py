"""SQLAlchemy-backed storage adapter.

Each public method opens its own session and commits before returning, so
every call is atomic. Rows are converted to the pydantic records of
``helm_campaign.models`` on the way out.
"""

from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helm_campaign.core.exceptions import NotFoundError
from helm_campaign.database.models import (
    AICacheEntryRow,
    EnrichmentRunRow,
    ImportRunRow,
    NoteClassificationRow,
    NoteImportSnapshotRow,
    NoteRelationshipRow,
    NoteRow,
)
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
from helm_campaign.repositories.base_repository import BaseRepository
from helm_campaign.repositories.storage import Storage, coerce_enum, merge_record
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return value


def to_row_values(record: BaseModel) -> Dict[str, Any]:
    """Column values for a record: enums as strings, nested models as JSON."""
    return {name: _column_value(getattr(record, name)) for name in type(record).model_fields}


class SQLAlchemyStorage(Storage):
    """``Storage`` over the tables in ``helm_campaign.database.models``.

    Args:
        session_maker: Factory for async sessions, see ``create_session_maker``
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    # ========== GENERIC HELPERS ==========

    async def _create(self, row_model: Type, record: RecordT) -> RecordT:
        async with self.session_maker() as session:
            row = await BaseRepository(session, row_model).create(**to_row_values(record))
            return type(record).model_validate(row)

    async def _get(self, row_model: Type, record_cls: Type[RecordT], record_id: str) -> Optional[RecordT]:
        async with self.session_maker() as session:
            row = await BaseRepository(session, row_model).get_by_id(record_id)
            return record_cls.model_validate(row) if row is not None else None

    async def _list(
        self,
        row_model: Type,
        record_cls: Type[RecordT],
        filters: Dict[str, Any],
        order_by: Optional[Sequence[Any]] = None,
    ) -> List[RecordT]:
        async with self.session_maker() as session:
            rows = await BaseRepository(session, row_model).get_all(filters, order_by=order_by)
            return [record_cls.model_validate(row) for row in rows]

    async def _update(
        self, row_model: Type, record_cls: Type[RecordT], record_id: str, updates: Dict[str, Any]
    ) -> RecordT:
        """Validate ``updates`` against the current record, then write the merged values."""
        async with self.session_maker() as session:
            repo = BaseRepository(session, row_model)
            row = await repo.get_by_id(record_id)
            if row is None:
                raise NotFoundError(f"{record_cls.__name__} {record_id} not found")
            merged = merge_record(record_cls.model_validate(row), updates)
            values = to_row_values(merged)
            values.pop("id")
            row = await repo.update(record_id, **values)
            return record_cls.model_validate(row)

    async def _delete_where(self, row_model: Type, *conditions) -> int:
        async with self.session_maker() as session:
            return await BaseRepository(session, row_model).delete_where(*conditions)

    async def _bulk_update_status(
        self, row_model: Type, ids: Sequence[str], status: ReviewStatus, user_id: Optional[str]
    ) -> int:
        status = coerce_enum(ReviewStatus, status, "review status")
        if not ids:
            return 0
        async with self.session_maker() as session:
            try:
                result = await session.execute(
                    update(row_model)
                    .where(row_model.id.in_(list(ids)))
                    .values(
                        status=status.value,
                        approved_by_user_id=user_id if status == ReviewStatus.APPROVED else None,
                        updated_at=utc_now(),
                    )
                )
                await session.commit()
                return result.rowcount or 0
            except SQLAlchemyError as e:
                await session.rollback()
                LOGGER.error(f"Error bulk updating {row_model.__name__} status: {e}", exc_info=True)
                raise

    # ========== NOTES ==========

    async def create_note(self, note: Note) -> Note:
        return await self._create(NoteRow, note)

    async def get_note(self, note_id: str) -> Optional[Note]:
        return await self._get(NoteRow, Note, note_id)

    async def update_note(self, note_id: str, **updates: Any) -> Note:
        return await self._update(NoteRow, Note, note_id, updates)

    async def delete_note(self, note_id: str) -> bool:
        async with self.session_maker() as session:
            return await BaseRepository(session, NoteRow).delete(note_id)

    async def get_notes_by_team(self, team_id: str) -> List[Note]:
        return await self._list(NoteRow, Note, {"team_id": team_id}, order_by=[NoteRow.created_at])

    async def get_notes_by_import_run(self, import_run_id: str) -> List[Note]:
        return await self._list(NoteRow, Note, {"import_run_id": import_run_id}, order_by=[NoteRow.created_at])

    async def find_note_by_source_id(
        self, team_id: str, source_system: str, source_page_id: str
    ) -> Optional[Note]:
        notes = await self._list(NoteRow, Note, {
            "team_id": team_id,
            "source_system": source_system,
            "source_page_id": source_page_id,
        })
        return notes[0] if notes else None

    async def find_or_create_session_log(
        self,
        team_id: str,
        session_date: date,
        title: str,
        created_by_user_id: Optional[str] = None,
    ) -> Note:
        filters = {
            "team_id": team_id,
            "note_type": NoteType.SESSION_LOG.value,
            "session_date": session_date,
        }
        existing = await self._list(NoteRow, Note, filters)
        if existing:
            return existing[0]

        note = Note(
            team_id=team_id,
            title=title,
            note_type=NoteType.SESSION_LOG,
            session_date=session_date,
            created_by_user_id=created_by_user_id,
            updated_by_user_id=created_by_user_id,
        )
        try:
            return await self._create(NoteRow, note)
        except IntegrityError:
            # A concurrent caller created it first; the unique constraint kept one row.
            LOGGER.info(
                "Session log created concurrently, reusing existing note",
                extra={"team_id": team_id, "session_date": session_date.isoformat()},
            )
            existing = await self._list(NoteRow, Note, filters)
            if not existing:
                raise
            return existing[0]

    # ========== IMPORT RUNS ==========

    async def create_import_run(self, run: ImportRun) -> ImportRun:
        return await self._create(ImportRunRow, run)

    async def get_import_run(self, import_run_id: str) -> Optional[ImportRun]:
        return await self._get(ImportRunRow, ImportRun, import_run_id)

    async def update_import_run(self, import_run_id: str, **updates: Any) -> ImportRun:
        return await self._update(ImportRunRow, ImportRun, import_run_id, updates)

    async def update_import_run_status(self, import_run_id: str, status: ImportRunStatus) -> ImportRun:
        return await self.update_import_run(
            import_run_id, status=coerce_enum(ImportRunStatus, status, "import run status")
        )

    # ========== IMPORT SNAPSHOTS ==========

    async def create_note_import_snapshot(self, snapshot: NoteImportSnapshot) -> NoteImportSnapshot:
        return await self._create(NoteImportSnapshotRow, snapshot)

    async def get_snapshots_by_import_run(self, import_run_id: str) -> List[NoteImportSnapshot]:
        return await self._list(
            NoteImportSnapshotRow,
            NoteImportSnapshot,
            {"import_run_id": import_run_id},
            order_by=[NoteImportSnapshotRow.created_at],
        )

    async def restore_note_from_snapshot(self, snapshot_id: str) -> Note:
        snapshot = await self._get(NoteImportSnapshotRow, NoteImportSnapshot, snapshot_id)
        if snapshot is None:
            raise NotFoundError(f"NoteImportSnapshot {snapshot_id} not found")
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
        return await self._delete_where(
            NoteImportSnapshotRow, NoteImportSnapshotRow.import_run_id == import_run_id
        )

    # ========== ENRICHMENT RUNS ==========

    async def create_enrichment_run(self, run: EnrichmentRun) -> EnrichmentRun:
        return await self._create(EnrichmentRunRow, run)

    async def get_enrichment_run(self, enrichment_run_id: str) -> Optional[EnrichmentRun]:
        return await self._get(EnrichmentRunRow, EnrichmentRun, enrichment_run_id)

    async def update_enrichment_run(self, enrichment_run_id: str, **updates: Any) -> EnrichmentRun:
        return await self._update(EnrichmentRunRow, EnrichmentRun, enrichment_run_id, updates)

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
        return await self._create(NoteClassificationRow, classification)

    async def get_note_classification(self, classification_id: str) -> Optional[NoteClassification]:
        return await self._get(NoteClassificationRow, NoteClassification, classification_id)

    async def get_note_classifications_by_enrichment_run(
        self, enrichment_run_id: str
    ) -> List[NoteClassification]:
        return await self._list(
            NoteClassificationRow,
            NoteClassification,
            {"enrichment_run_id": enrichment_run_id},
            order_by=[NoteClassificationRow.created_at],
        )

    async def get_current_note_classification(self, note_id: str) -> Optional[NoteClassification]:
        classifications = await self._list(
            NoteClassificationRow,
            NoteClassification,
            {"note_id": note_id},
            order_by=[NoteClassificationRow.created_at.desc()],
        )
        return classifications[0] if classifications else None

    async def update_note_classification_status(
        self, classification_id: str, status: ReviewStatus, user_id: Optional[str]
    ) -> NoteClassification:
        status = coerce_enum(ReviewStatus, status, "classification status")
        return await self._update(NoteClassificationRow, NoteClassification, classification_id, {
            "status": status,
            "approved_by_user_id": user_id if status == ReviewStatus.APPROVED else None,
        })

    async def bulk_update_classification_status(
        self, classification_ids: Sequence[str], status: ReviewStatus, user_id: Optional[str]
    ) -> int:
        return await self._bulk_update_status(NoteClassificationRow, classification_ids, status, user_id)

    async def delete_classifications_by_enrichment_run(self, enrichment_run_id: str) -> int:
        return await self._delete_where(
            NoteClassificationRow, NoteClassificationRow.enrichment_run_id == enrichment_run_id
        )

    async def get_pending_low_confidence_classifications(
        self, team_id: str, threshold: float
    ) -> List[NeedsReviewItem]:
        query = (
            select(NoteClassificationRow, NoteRow.title)
            .join(NoteRow, NoteRow.id == NoteClassificationRow.note_id)
            .where(
                NoteRow.team_id == team_id,
                NoteClassificationRow.status == ReviewStatus.PENDING.value,
                NoteClassificationRow.confidence < threshold,
            )
            .order_by(NoteClassificationRow.confidence.asc())
        )
        async with self.session_maker() as session:
            try:
                result = await session.execute(query)
            except SQLAlchemyError as e:
                LOGGER.error(f"Error listing classifications needing review: {e}", exc_info=True)
                raise
            return [
                NeedsReviewItem(
                    classification_id=row.id,
                    note_id=row.note_id,
                    note_title=title,
                    inferred_type=row.inferred_type,
                    confidence=row.confidence,
                    explanation=row.explanation,
                )
                for row, title in result.all()
            ]

    # ========== RELATIONSHIPS ==========

    async def create_note_relationship(self, relationship: NoteRelationship) -> NoteRelationship:
        return await self._create(NoteRelationshipRow, relationship)

    async def get_note_relationship(self, relationship_id: str) -> Optional[NoteRelationship]:
        return await self._get(NoteRelationshipRow, NoteRelationship, relationship_id)

    async def get_note_relationships_by_enrichment_run(
        self, enrichment_run_id: str
    ) -> List[NoteRelationship]:
        return await self._list(
            NoteRelationshipRow,
            NoteRelationship,
            {"enrichment_run_id": enrichment_run_id},
            order_by=[NoteRelationshipRow.created_at],
        )

    async def update_note_relationship_status(
        self, relationship_id: str, status: ReviewStatus, user_id: Optional[str]
    ) -> NoteRelationship:
        status = coerce_enum(ReviewStatus, status, "relationship status")
        return await self._update(NoteRelationshipRow, NoteRelationship, relationship_id, {
            "status": status,
            "approved_by_user_id": user_id if status == ReviewStatus.APPROVED else None,
        })

    async def bulk_update_relationship_status(
        self, relationship_ids: Sequence[str], status: ReviewStatus, user_id: Optional[str]
    ) -> int:
        return await self._bulk_update_status(NoteRelationshipRow, relationship_ids, status, user_id)

    async def delete_relationships_by_enrichment_run(self, enrichment_run_id: str) -> int:
        return await self._delete_where(
            NoteRelationshipRow, NoteRelationshipRow.enrichment_run_id == enrichment_run_id
        )

    # ========== AI CACHE ==========

    @staticmethod
    def _cache_filters(
        cache_type: CacheType, algorithm_version: str, context_hash: Optional[str], team_id: str
    ) -> Dict[str, Any]:
        return {
            "cache_type": CacheType(cache_type).value,
            "algorithm_version": algorithm_version,
            "context_hash": context_hash,
            "team_id": team_id,
        }

    async def get_ai_cache_entry(
        self,
        cache_type: CacheType,
        content_hash: str,
        algorithm_version: str,
        context_hash: Optional[str],
        team_id: str,
    ) -> Optional[AICacheEntry]:
        filters = self._cache_filters(cache_type, algorithm_version, context_hash, team_id)
        filters["content_hash"] = content_hash
        entries = await self._list(AICacheEntryRow, AICacheEntry, filters)
        return entries[0] if entries else None

    async def get_ai_cache_entries_batch(
        self,
        cache_type: CacheType,
        content_hashes: Sequence[str],
        algorithm_version: str,
        context_hash: Optional[str],
        team_id: str,
    ) -> List[AICacheEntry]:
        if not content_hashes:
            return []
        query = select(AICacheEntryRow).where(
            AICacheEntryRow.cache_type == CacheType(cache_type).value,
            AICacheEntryRow.content_hash.in_(list(content_hashes)),
            AICacheEntryRow.algorithm_version == algorithm_version,
            AICacheEntryRow.context_hash.is_(None) if context_hash is None
            else AICacheEntryRow.context_hash == context_hash,
            AICacheEntryRow.team_id == team_id,
        )
        async with self.session_maker() as session:
            try:
                result = await session.execute(query)
            except SQLAlchemyError as e:
                LOGGER.error(f"Error in AI cache batch lookup: {e}", exc_info=True)
                raise
            return [AICacheEntry.model_validate(row) for row in result.scalars().all()]

    async def set_ai_cache_entry(self, entry: AICacheEntry) -> AICacheEntry:
        existing = await self.get_ai_cache_entry(
            entry.cache_type, entry.content_hash, entry.algorithm_version, entry.context_hash, entry.team_id
        )
        if existing is None:
            return await self._create(AICacheEntryRow, entry)
        return await self._update(AICacheEntryRow, AICacheEntry, existing.id, {
            "result": entry.result,
            "model_id": entry.model_id,
            "tokens_saved": entry.tokens_saved,
            "expires_at": entry.expires_at,
        })

    async def increment_ai_cache_hit_count(self, entry_id: str) -> None:
        async with self.session_maker() as session:
            try:
                await session.execute(
                    update(AICacheEntryRow)
                    .where(AICacheEntryRow.id == entry_id)
                    .values(hit_count=AICacheEntryRow.hit_count + 1, last_hit_at=utc_now())
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                LOGGER.error(f"Error incrementing AI cache hit count: {e}", exc_info=True)
                raise

    async def delete_ai_cache_by_version(self, cache_type: CacheType, algorithm_version: str) -> int:
        return await self._delete_where(
            AICacheEntryRow,
            AICacheEntryRow.cache_type == CacheType(cache_type).value,
            AICacheEntryRow.algorithm_version == algorithm_version,
        )

    async def delete_ai_cache_by_team(self, team_id: str) -> int:
        return await self._delete_where(AICacheEntryRow, AICacheEntryRow.team_id == team_id)

    async def delete_expired_ai_cache_entries(self) -> int:
        count = await self._delete_where(AICacheEntryRow, AICacheEntryRow.expires_at <= utc_now())
        if count:
            LOGGER.info("Pruned expired AI cache entries", extra={"count": count})
        return count

    async def get_ai_cache_stats(self, expiring_within: timedelta) -> AICacheStats:
        now = utc_now()
        async with self.session_maker() as session:
            try:
                totals = (await session.execute(
                    select(
                        func.count(AICacheEntryRow.id),
                        func.coalesce(func.sum(AICacheEntryRow.hit_count), 0),
                        func.min(AICacheEntryRow.created_at),
                        func.max(AICacheEntryRow.created_at),
                    )
                )).one()
                by_type = (await session.execute(
                    select(AICacheEntryRow.cache_type, func.count(AICacheEntryRow.id))
                    .group_by(AICacheEntryRow.cache_type)
                )).all()
                expiring = (await session.execute(
                    select(func.count(AICacheEntryRow.id)).where(
                        AICacheEntryRow.expires_at > now,
                        AICacheEntryRow.expires_at <= now + expiring_within,
                    )
                )).scalar_one()
            except SQLAlchemyError as e:
                LOGGER.error(f"Error computing AI cache stats: {e}", exc_info=True)
                raise

        total_entries, total_hits, oldest, newest = totals
        return AICacheStats(
            total_entries=total_entries,
            entries_by_type={cache_type: count for cache_type, count in by_type},
            total_hits=int(total_hits),
            oldest_entry=oldest,
            newest_entry=newest,
            entries_expiring_soon=expiring,
        )
