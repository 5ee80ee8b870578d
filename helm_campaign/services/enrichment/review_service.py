"""Review of enrichment results: needs-review queue, approvals and undo."""

from typing import Any, Dict, List, Optional, Sequence

from helm_campaign.core.exceptions import NotFoundError
from helm_campaign.models import (
    EnrichmentStatus,
    NeedsReviewItem,
    NoteClassification,
    NoteRelationship,
    ReviewStatus,
)
from helm_campaign.models.enums import InferredEntityType
from helm_campaign.repositories.storage import Storage, coerce_enum
from helm_campaign.services.ai.type_mapping import (
    HIGH_CONFIDENCE_THRESHOLD,
    REVIEW_THRESHOLD,
    map_inferred_type_to_note_type,
)
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ReviewService:
    """Approval and rejection of classification and relationship records.

    Approving a classification also applies the approved type to its note.
    Rejecting only changes the record; the note keeps its current type.
    Note-level rollback of an import is handled by ``ImportService``.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    async def list_needs_review(self, team_id: str) -> List[NeedsReviewItem]:
        """Pending classifications below the review threshold, least confident first."""
        return await self.storage.get_pending_low_confidence_classifications(team_id, REVIEW_THRESHOLD)

    # ========== CLASSIFICATIONS ==========

    async def approve_classification(
        self,
        classification_id: str,
        user_id: str,
        override_type: Optional[InferredEntityType] = None,
    ) -> NoteClassification:
        """Approve a classification and retype its note.

        Args:
            classification_id: Classification to approve
            user_id: Approving user
            override_type: Type chosen by the reviewer; applied to the note
                instead of the inferred type, the record itself is unchanged

        Raises:
            NotFoundError: If the classification does not exist
        """
        await self._get_classification(classification_id)
        note_type_source = (
            coerce_enum(InferredEntityType, override_type, "override type")
            if override_type is not None else None
        )

        approved = await self.storage.update_note_classification_status(
            classification_id, ReviewStatus.APPROVED, user_id
        )
        await self.storage.update_note(
            approved.note_id,
            note_type=map_inferred_type_to_note_type(note_type_source or approved.inferred_type),
            updated_by_user_id=user_id,
        )

        LOGGER.info(
            "Classification approved",
            extra={
                "classification_id": classification_id,
                "note_id": approved.note_id,
                "inferred_type": approved.inferred_type.value,
                "override_type": note_type_source.value if note_type_source else None,
                "user_id": user_id,
            },
        )
        return approved

    async def reject_classification(self, classification_id: str, user_id: str) -> NoteClassification:
        await self._get_classification(classification_id)
        rejected = await self.storage.update_note_classification_status(
            classification_id, ReviewStatus.REJECTED, user_id
        )
        LOGGER.info(
            "Classification rejected",
            extra={"classification_id": classification_id, "user_id": user_id},
        )
        return rejected

    async def bulk_approve_classifications(self, classification_ids: Sequence[str], user_id: str) -> int:
        """Approve each existing classification; unknown IDs are skipped.

        Returns:
            Number of classifications approved
        """
        approved = 0
        for classification_id in dict.fromkeys(classification_ids):
            if await self.storage.get_note_classification(classification_id) is None:
                LOGGER.warning("Skipping unknown classification", extra={"classification_id": classification_id})
                continue
            await self.approve_classification(classification_id, user_id)
            approved += 1
        return approved

    async def bulk_reject_classifications(self, classification_ids: Sequence[str], user_id: str) -> int:
        return await self.storage.bulk_update_classification_status(
            list(dict.fromkeys(classification_ids)), ReviewStatus.REJECTED, user_id
        )

    async def approve_high_confidence_classifications(
        self,
        enrichment_run_id: str,
        user_id: str,
        threshold: float = HIGH_CONFIDENCE_THRESHOLD,
    ) -> int:
        """Approve every pending classification of a run at or above ``threshold``."""
        classifications = await self.storage.get_note_classifications_by_enrichment_run(enrichment_run_id)
        eligible = [
            c.id for c in classifications
            if c.status == ReviewStatus.PENDING and c.confidence >= threshold
        ]
        approved = await self.bulk_approve_classifications(eligible, user_id)
        LOGGER.info(
            "Approved high-confidence classifications",
            extra={"enrichment_run_id": enrichment_run_id, "threshold": threshold, "count": approved},
        )
        return approved

    async def _get_classification(self, classification_id: str) -> NoteClassification:
        classification = await self.storage.get_note_classification(classification_id)
        if classification is None:
            raise NotFoundError(f"Classification {classification_id} not found")
        return classification

    # ========== RELATIONSHIPS ==========

    async def approve_relationship(self, relationship_id: str, user_id: str) -> NoteRelationship:
        await self._get_relationship(relationship_id)
        return await self.storage.update_note_relationship_status(
            relationship_id, ReviewStatus.APPROVED, user_id
        )

    async def reject_relationship(self, relationship_id: str, user_id: str) -> NoteRelationship:
        await self._get_relationship(relationship_id)
        return await self.storage.update_note_relationship_status(
            relationship_id, ReviewStatus.REJECTED, user_id
        )

    async def bulk_approve_relationships(self, relationship_ids: Sequence[str], user_id: str) -> int:
        return await self.storage.bulk_update_relationship_status(
            list(dict.fromkeys(relationship_ids)), ReviewStatus.APPROVED, user_id
        )

    async def bulk_reject_relationships(self, relationship_ids: Sequence[str], user_id: str) -> int:
        return await self.storage.bulk_update_relationship_status(
            list(dict.fromkeys(relationship_ids)), ReviewStatus.REJECTED, user_id
        )

    async def approve_high_confidence_relationships(
        self,
        enrichment_run_id: str,
        user_id: str,
        threshold: float = HIGH_CONFIDENCE_THRESHOLD,
    ) -> int:
        relationships = await self.storage.get_note_relationships_by_enrichment_run(enrichment_run_id)
        eligible = [
            r.id for r in relationships
            if r.status == ReviewStatus.PENDING and r.confidence >= threshold
        ]
        return await self.bulk_approve_relationships(eligible, user_id)

    async def _get_relationship(self, relationship_id: str) -> NoteRelationship:
        relationship = await self.storage.get_note_relationship(relationship_id)
        if relationship is None:
            raise NotFoundError(f"Relationship {relationship_id} not found")
        return relationship

    # ========== RUNS ==========

    async def get_enrichment_run_details(self, enrichment_run_id: str) -> Dict[str, Any]:
        """The run with its classifications and relationships.

        Raises:
            NotFoundError: If the run does not exist
        """
        run = await self.storage.get_enrichment_run(enrichment_run_id)
        if run is None:
            raise NotFoundError(f"Enrichment run {enrichment_run_id} not found")
        return {
            "run": run,
            "classifications": await self.storage.get_note_classifications_by_enrichment_run(enrichment_run_id),
            "relationships": await self.storage.get_note_relationships_by_enrichment_run(enrichment_run_id),
        }

    async def undo_enrichment_run(self, enrichment_run_id: str) -> Dict[str, int]:
        """Delete every classification and relationship of a run and mark it failed.

        Notes retyped by approvals are not reverted. Calling this again
        deletes nothing and returns zero counts.

        Raises:
            NotFoundError: If the run does not exist
        """
        if await self.storage.get_enrichment_run(enrichment_run_id) is None:
            raise NotFoundError(f"Enrichment run {enrichment_run_id} not found")

        classifications_deleted = await self.storage.delete_classifications_by_enrichment_run(enrichment_run_id)
        relationships_deleted = await self.storage.delete_relationships_by_enrichment_run(enrichment_run_id)
        await self.storage.update_enrichment_run_status(enrichment_run_id, EnrichmentStatus.FAILED)
        LOGGER.info(
            "Undid enrichment run",
            extra={
                "enrichment_run_id": enrichment_run_id,
                "classifications_deleted": classifications_deleted,
                "relationships_deleted": relationships_deleted,
            },
        )
        return {
            "classifications_deleted": classifications_deleted,
            "relationships_deleted": relationships_deleted,
        }
