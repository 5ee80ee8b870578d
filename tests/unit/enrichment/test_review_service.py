"""Tests for reviewing enrichment results."""

import pytest

from helm_campaign.core.exceptions import NotFoundError, ValidationError
from helm_campaign.models import (
    EnrichmentStatus,
    NoteClassification,
    NoteRelationship,
    NoteType,
    ReviewStatus,
)
from helm_campaign.models.enums import EvidenceType, InferredEntityType, RelationshipType
from helm_campaign.services.enrichment.review_service import ReviewService

USER_ID = "reviewer-1"


@pytest.fixture
def review_service(storage):
    return ReviewService(storage)


@pytest.fixture
def add_classification(storage):
    async def _add(note_id, run_id, inferred_type=InferredEntityType.NPC, confidence=0.5):
        return await storage.create_note_classification(NoteClassification(
            note_id=note_id,
            enrichment_run_id=run_id,
            inferred_type=inferred_type,
            confidence=confidence,
            explanation="test",
        ))
    return _add


@pytest.fixture
def add_relationship(storage):
    async def _add(run_id, from_id, to_id, confidence=0.5):
        return await storage.create_note_relationship(NoteRelationship(
            enrichment_run_id=run_id,
            from_note_id=from_id,
            to_note_id=to_id,
            relationship_type=RelationshipType.NPC_IN_PLACE,
            confidence=confidence,
            evidence_type=EvidenceType.MENTION,
        ))
    return _add


async def _setup_run(storage, make_note, seed_import, seed_enrichment_run, team_id="team-1"):
    notes = [
        make_note("n1", "Kettle", team_id=team_id),
        make_note("n2", "Old Mill", team_id=team_id),
        make_note("n3", "Session 1", team_id=team_id),
    ]
    import_run = await seed_import(storage, notes, team_id=team_id)
    return await seed_enrichment_run(storage, import_run)


# ========== NEEDS REVIEW TESTS ==========

class TestNeedsReview:

    @pytest.mark.asyncio
    async def test_filters_sorts_and_scopes_by_team(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        low = await add_classification("n1", run.id, confidence=0.6)
        lowest = await add_classification("n2", run.id, confidence=0.2)
        await add_classification("n3", run.id, confidence=0.65)

        other_note = make_note("x1", "Elsewhere", team_id="team-2")
        other_run = await seed_enrichment_run(storage, await seed_import(storage, [other_note], team_id="team-2"))
        await add_classification("x1", other_run.id, confidence=0.1)

        items = await review_service.list_needs_review("team-1")

        assert [item.classification_id for item in items] == [lowest.id, low.id]
        assert items[0].note_title == "Old Mill"

    @pytest.mark.asyncio
    async def test_reviewed_items_leave_the_queue(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        approved = await add_classification("n1", run.id, confidence=0.3)
        rejected = await add_classification("n2", run.id, confidence=0.3)

        await review_service.approve_classification(approved.id, USER_ID)
        await review_service.reject_classification(rejected.id, USER_ID)

        assert await review_service.list_needs_review("team-1") == []


# ========== CLASSIFICATION REVIEW TESTS ==========

class TestClassificationReview:

    @pytest.mark.asyncio
    async def test_approve_retypes_note(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        classification = await add_classification("n2", run.id, InferredEntityType.AREA, 0.9)

        approved = await review_service.approve_classification(classification.id, USER_ID)

        assert approved.status == ReviewStatus.APPROVED
        assert approved.approved_by_user_id == USER_ID
        note = await storage.get_note("n2")
        assert note.note_type == NoteType.POI
        assert note.updated_by_user_id == USER_ID

    @pytest.mark.asyncio
    async def test_approve_with_override(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        classification = await add_classification("n1", run.id, InferredEntityType.NPC, 0.6)

        approved = await review_service.approve_classification(classification.id, USER_ID, override_type="Character")

        assert approved.inferred_type == InferredEntityType.NPC
        note = await storage.get_note("n1")
        assert note.note_type == NoteType.CHARACTER

    @pytest.mark.asyncio
    async def test_approve_with_invalid_override(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        classification = await add_classification("n1", run.id)

        with pytest.raises(ValidationError):
            await review_service.approve_classification(classification.id, USER_ID, override_type="Dragon")

        unchanged = await storage.get_note_classification(classification.id)
        assert unchanged.status == ReviewStatus.PENDING

    @pytest.mark.asyncio
    async def test_reject_leaves_note_and_clears_approver(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        classification = await add_classification("n1", run.id, InferredEntityType.QUEST, 0.9)
        await review_service.approve_classification(classification.id, USER_ID)

        rejected = await review_service.reject_classification(classification.id, USER_ID)

        assert rejected.status == ReviewStatus.REJECTED
        assert rejected.approved_by_user_id is None
        # The earlier approval already retyped the note; rejecting does not revert it.
        assert (await storage.get_note("n1")).note_type == NoteType.QUEST

    @pytest.mark.asyncio
    async def test_unknown_classification(self, review_service):
        with pytest.raises(NotFoundError):
            await review_service.approve_classification("missing", USER_ID)
        with pytest.raises(NotFoundError):
            await review_service.reject_classification("missing", USER_ID)

    @pytest.mark.asyncio
    async def test_bulk_approve_skips_unknown(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        first = await add_classification("n1", run.id, InferredEntityType.NPC)
        second = await add_classification("n3", run.id, InferredEntityType.SESSION_LOG)

        count = await review_service.bulk_approve_classifications([first.id, "missing", second.id, first.id], USER_ID)

        assert count == 2
        assert (await storage.get_note("n3")).note_type == NoteType.SESSION_LOG

    @pytest.mark.asyncio
    async def test_bulk_reject(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        first = await add_classification("n1", run.id)
        second = await add_classification("n2", run.id)

        assert await review_service.bulk_reject_classifications([first.id, second.id, "missing"], USER_ID) == 2
        assert (await storage.get_note_classification(second.id)).status == ReviewStatus.REJECTED

    @pytest.mark.asyncio
    async def test_approve_high_confidence(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_classification
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        high = await add_classification("n1", run.id, InferredEntityType.NPC, 0.85)
        at_threshold = await add_classification("n2", run.id, InferredEntityType.AREA, 0.80)
        low = await add_classification("n3", run.id, InferredEntityType.SESSION_LOG, 0.79)

        assert await review_service.approve_high_confidence_classifications(run.id, USER_ID) == 2

        assert (await storage.get_note_classification(high.id)).status == ReviewStatus.APPROVED
        assert (await storage.get_note_classification(at_threshold.id)).status == ReviewStatus.APPROVED
        assert (await storage.get_note_classification(low.id)).status == ReviewStatus.PENDING
        # Already approved records are not approved again.
        assert await review_service.approve_high_confidence_classifications(run.id, USER_ID) == 0


# ========== RELATIONSHIP REVIEW TESTS ==========

class TestRelationshipReview:

    @pytest.mark.asyncio
    async def test_approve_and_reject(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_relationship
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        relationship = await add_relationship(run.id, "n1", "n2")

        approved = await review_service.approve_relationship(relationship.id, USER_ID)
        assert approved.status == ReviewStatus.APPROVED
        assert approved.approved_by_user_id == USER_ID

        rejected = await review_service.reject_relationship(relationship.id, USER_ID)
        assert rejected.status == ReviewStatus.REJECTED
        assert rejected.approved_by_user_id is None

    @pytest.mark.asyncio
    async def test_unknown_relationship(self, review_service):
        with pytest.raises(NotFoundError):
            await review_service.approve_relationship("missing", USER_ID)

    @pytest.mark.asyncio
    async def test_bulk_and_high_confidence(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run, add_relationship
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        strong = await add_relationship(run.id, "n1", "n2", confidence=0.9)
        weak = await add_relationship(run.id, "n1", "n3", confidence=0.4)

        assert await review_service.approve_high_confidence_relationships(run.id, USER_ID) == 1
        assert (await storage.get_note_relationship(strong.id)).status == ReviewStatus.APPROVED

        assert await review_service.bulk_reject_relationships([weak.id, "missing"], USER_ID) == 1
        assert (await storage.get_note_relationship(weak.id)).status == ReviewStatus.REJECTED


# ========== RUN TESTS ==========

class TestEnrichmentRuns:

    @pytest.mark.asyncio
    async def test_run_details(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run,
        add_classification, add_relationship,
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        await add_classification("n1", run.id)
        await add_relationship(run.id, "n1", "n2")

        details = await review_service.get_enrichment_run_details(run.id)

        assert details["run"].id == run.id
        assert len(details["classifications"]) == 1
        assert len(details["relationships"]) == 1

    @pytest.mark.asyncio
    async def test_run_details_unknown(self, review_service):
        with pytest.raises(NotFoundError):
            await review_service.get_enrichment_run_details("missing")

    @pytest.mark.asyncio
    async def test_undo_is_idempotent(
        self, storage, review_service, make_note, seed_import, seed_enrichment_run,
        add_classification, add_relationship,
    ):
        run = await _setup_run(storage, make_note, seed_import, seed_enrichment_run)
        await add_classification("n1", run.id)
        await add_classification("n2", run.id)
        await add_relationship(run.id, "n1", "n2")

        assert await review_service.undo_enrichment_run(run.id) == {
            "classifications_deleted": 2,
            "relationships_deleted": 1,
        }
        assert await review_service.undo_enrichment_run(run.id) == {
            "classifications_deleted": 0,
            "relationships_deleted": 0,
        }
        assert await storage.get_note("n1") is not None
        undone = await storage.get_enrichment_run(run.id)
        assert undone.status == EnrichmentStatus.FAILED
        assert undone.completed_at is not None

    @pytest.mark.asyncio
    async def test_undo_unknown_run(self, review_service):
        with pytest.raises(NotFoundError):
            await review_service.undo_enrichment_run("missing")
