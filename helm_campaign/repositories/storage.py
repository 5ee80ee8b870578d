"""Storage interface consumed by the import, enrichment and review services.

Every method is atomic per call; callers never coordinate transactions.
Two adapters implement it: ``InMemoryStorage`` for tests and local runs,
and ``SQLAlchemyStorage`` for PostgreSQL.
"""

from abc import ABC, abstractmethod
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from helm_campaign.core.exceptions import ValidationError
from helm_campaign.models.records import utc_now
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
    ReviewStatus,
)


ModelT = TypeVar("ModelT", bound=BaseModel)
EnumT = TypeVar("EnumT", bound=Enum)


def coerce_enum(enum_cls: Type[EnumT], value: Any, field: str) -> EnumT:
    """Convert a raw value into ``enum_cls`` or raise ``ValidationError``."""
    try:
        return enum_cls(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {field}: {value!r}", e) from e


def merge_record(record: ModelT, updates: Dict[str, Any]) -> ModelT:
    """Return a re-validated copy of ``record`` with ``updates`` applied.

    Re-validation runs model validators again, so e.g. a note whose type
    changes away from quest loses its quest status.

    Raises:
        ValidationError: On unknown fields or invalid values
    """
    unknown = set(updates) - set(type(record).model_fields)
    if unknown:
        raise ValidationError(f"Unknown {type(record).__name__} fields: {sorted(unknown)}")

    data = record.model_dump()
    data.update(updates)
    if "updated_at" in type(record).model_fields and "updated_at" not in updates:
        data["updated_at"] = utc_now()
    try:
        return type(record).model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {type(record).__name__} update: {e}", e) from e


class Storage(ABC):
    """Record store for notes, import/enrichment runs and the AI cache."""

    # ========== NOTES ==========

    @abstractmethod
    async def create_note(self, note: Note) -> Note:
        ...

    @abstractmethod
    async def get_note(self, note_id: str) -> Optional[Note]:
        ...

    @abstractmethod
    async def update_note(self, note_id: str, **updates: Any) -> Note:
        """Apply field updates. Clears ``quest_status`` when the resulting type is not quest.

        Raises:
            NotFoundError: If the note does not exist
        """

    @abstractmethod
    async def delete_note(self, note_id: str) -> bool:
        ...

    @abstractmethod
    async def get_notes_by_team(self, team_id: str) -> List[Note]:
        ...

    @abstractmethod
    async def get_notes_by_import_run(self, import_run_id: str) -> List[Note]:
        ...

    @abstractmethod
    async def find_note_by_source_id(
        self, team_id: str, source_system: str, source_page_id: str
    ) -> Optional[Note]:
        ...

    @abstractmethod
    async def find_or_create_session_log(
        self,
        team_id: str,
        session_date: date,
        title: str,
        created_by_user_id: Optional[str] = None,
    ) -> Note:
        """Return the team's session log for a date, creating it at most once."""

    # ========== IMPORT RUNS ==========

    @abstractmethod
    async def create_import_run(self, run: ImportRun) -> ImportRun:
        ...

    @abstractmethod
    async def get_import_run(self, import_run_id: str) -> Optional[ImportRun]:
        ...

    @abstractmethod
    async def update_import_run(self, import_run_id: str, **updates: Any) -> ImportRun:
        ...

    @abstractmethod
    async def update_import_run_status(self, import_run_id: str, status: ImportRunStatus) -> ImportRun:
        ...

    # ========== IMPORT SNAPSHOTS ==========

    @abstractmethod
    async def create_note_import_snapshot(self, snapshot: NoteImportSnapshot) -> NoteImportSnapshot:
        ...

    @abstractmethod
    async def get_snapshots_by_import_run(self, import_run_id: str) -> List[NoteImportSnapshot]:
        ...

    @abstractmethod
    async def restore_note_from_snapshot(self, snapshot_id: str) -> Note:
        """Revert the snapshotted fields and clear the note's ``import_run_id``."""

    @abstractmethod
    async def delete_snapshots_by_import_run(self, import_run_id: str) -> int:
        ...

    # ========== ENRICHMENT RUNS ==========

    @abstractmethod
    async def create_enrichment_run(self, run: EnrichmentRun) -> EnrichmentRun:
        ...

    @abstractmethod
    async def get_enrichment_run(self, enrichment_run_id: str) -> Optional[EnrichmentRun]:
        ...

    @abstractmethod
    async def update_enrichment_run(self, enrichment_run_id: str, **updates: Any) -> EnrichmentRun:
        ...

    @abstractmethod
    async def update_enrichment_run_status(
        self, enrichment_run_id: str, status: EnrichmentStatus
    ) -> EnrichmentRun:
        """Transition status. ``running`` stamps started_at, terminal states stamp completed_at."""

    # ========== CLASSIFICATIONS ==========

    @abstractmethod
    async def create_note_classification(self, classification: NoteClassification) -> NoteClassification:
        ...

    @abstractmethod
    async def get_note_classification(self, classification_id: str) -> Optional[NoteClassification]:
        ...

    @abstractmethod
    async def get_note_classifications_by_enrichment_run(
        self, enrichment_run_id: str
    ) -> List[NoteClassification]:
        ...

    @abstractmethod
    async def get_current_note_classification(self, note_id: str) -> Optional[NoteClassification]:
        """Most recently created classification of a note."""

    @abstractmethod
    async def update_note_classification_status(
        self, classification_id: str, status: ReviewStatus, user_id: Optional[str]
    ) -> NoteClassification:
        """Set status; ``approved_by_user_id`` is kept only for approved rows."""

    @abstractmethod
    async def bulk_update_classification_status(
        self, classification_ids: Sequence[str], status: ReviewStatus, user_id: Optional[str]
    ) -> int:
        ...

    @abstractmethod
    async def delete_classifications_by_enrichment_run(self, enrichment_run_id: str) -> int:
        ...

    @abstractmethod
    async def get_pending_low_confidence_classifications(
        self, team_id: str, threshold: float
    ) -> List[NeedsReviewItem]:
        """Pending classifications below ``threshold`` for the team's notes, ascending by confidence."""

    # ========== RELATIONSHIPS ==========

    @abstractmethod
    async def create_note_relationship(self, relationship: NoteRelationship) -> NoteRelationship:
        ...

    @abstractmethod
    async def get_note_relationship(self, relationship_id: str) -> Optional[NoteRelationship]:
        ...

    @abstractmethod
    async def get_note_relationships_by_enrichment_run(
        self, enrichment_run_id: str
    ) -> List[NoteRelationship]:
        ...

    @abstractmethod
    async def update_note_relationship_status(
        self, relationship_id: str, status: ReviewStatus, user_id: Optional[str]
    ) -> NoteRelationship:
        ...

    @abstractmethod
    async def bulk_update_relationship_status(
        self, relationship_ids: Sequence[str], status: ReviewStatus, user_id: Optional[str]
    ) -> int:
        ...

    @abstractmethod
    async def delete_relationships_by_enrichment_run(self, enrichment_run_id: str) -> int:
        ...

    # ========== AI CACHE ==========

    @abstractmethod
    async def get_ai_cache_entry(
        self,
        cache_type: CacheType,
        content_hash: str,
        algorithm_version: str,
        context_hash: Optional[str],
        team_id: str,
    ) -> Optional[AICacheEntry]:
        ...

    @abstractmethod
    async def get_ai_cache_entries_batch(
        self,
        cache_type: CacheType,
        content_hashes: Sequence[str],
        algorithm_version: str,
        context_hash: Optional[str],
        team_id: str,
    ) -> List[AICacheEntry]:
        ...

    @abstractmethod
    async def set_ai_cache_entry(self, entry: AICacheEntry) -> AICacheEntry:
        """Upsert on the lookup key; an existing entry keeps its id and hit count."""

    @abstractmethod
    async def increment_ai_cache_hit_count(self, entry_id: str) -> None:
        ...

    @abstractmethod
    async def delete_ai_cache_by_version(self, cache_type: CacheType, algorithm_version: str) -> int:
        ...

    @abstractmethod
    async def delete_ai_cache_by_team(self, team_id: str) -> int:
        ...

    @abstractmethod
    async def delete_expired_ai_cache_entries(self) -> int:
        ...

    @abstractmethod
    async def get_ai_cache_stats(self, expiring_within: timedelta) -> AICacheStats:
        ...
