"""Tests for the in-memory storage adapter."""

import asyncio
from datetime import date

import pytest

from helm_campaign.core.exceptions import NotFoundError, ValidationError
from helm_campaign.models import (
    EnrichmentStatus,
    ImportRun,
    ImportRunStatus,
    Note,
    NoteClassification,
    NoteType,
    QuestStatus,
    ReviewStatus,
)
from helm_campaign.models.enums import InferredEntityType


@pytest.fixture
def add_note_classification(storage):
    async def _add(classification_id, note_id):
        return await storage.create_note_classification(NoteClassification(
            id=classification_id,
            note_id=note_id,
            enrichment_run_id="run-1",
            inferred_type=InferredEntityType.NPC,
            confidence=0.7,
        ))
    return _add


# ========== NOTE TESTS ==========

class TestNotes:

    @pytest.mark.asyncio
    async def test_records_are_copied(self, storage, make_note):
        note = make_note("n1", "Kettle")
        await storage.create_note(note)

        note.title = "Changed outside"
        fetched = await storage.get_note("n1")
        fetched.title = "Changed again"

        assert (await storage.get_note("n1")).title == "Kettle"

    @pytest.mark.asyncio
    async def test_quest_status_cleared_when_type_changes(self, storage, make_note):
        await storage.create_note(make_note("q1", "Find the key", note_type=NoteType.QUEST, quest_status=QuestStatus.ACTIVE))

        updated = await storage.update_note("q1", note_type=NoteType.NPC)

        assert updated.quest_status is None

    def test_quest_status_requires_quest_type(self):
        note = Note(team_id="t", title="Kettle", note_type=NoteType.NPC, quest_status=QuestStatus.DONE)
        assert note.quest_status is None

    @pytest.mark.asyncio
    async def test_invalid_enum_value_rejected(self, storage, make_note):
        await storage.create_note(make_note("n1", "Kettle"))

        with pytest.raises(ValidationError):
            await storage.update_note("n1", note_type="dragon")

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, storage, make_note):
        await storage.create_note(make_note("n1", "Kettle"))

        with pytest.raises(ValidationError):
            await storage.update_note("n1", colour="red")

    @pytest.mark.asyncio
    async def test_update_missing_note(self, storage):
        with pytest.raises(NotFoundError):
            await storage.update_note("missing", title="x")

    @pytest.mark.asyncio
    async def test_find_by_source_id_is_team_scoped(self, storage, make_note):
        await storage.create_note(make_note("n1", "Kettle", source_system="NUCLINO", source_page_id="aaaaaaa1"))

        assert (await storage.find_note_by_source_id("team-1", "NUCLINO", "aaaaaaa1")).id == "n1"
        assert await storage.find_note_by_source_id("team-2", "NUCLINO", "aaaaaaa1") is None

    @pytest.mark.asyncio
    async def test_concurrent_session_log_creation(self, storage):
        session_date = date(2026, 3, 14)

        notes = await asyncio.gather(*[
            storage.find_or_create_session_log("team-1", session_date, "Session", "user-1")
            for _ in range(5)
        ])

        assert len({note.id for note in notes}) == 1
        team_notes = await storage.get_notes_by_team("team-1")
        assert len(team_notes) == 1
        assert team_notes[0].note_type == NoteType.SESSION_LOG

    @pytest.mark.asyncio
    async def test_session_log_is_copied(self, storage):
        created = await storage.find_or_create_session_log("team-1", date(2026, 3, 14), "Session", "user-1")
        created.title = "Changed outside"

        again = await storage.find_or_create_session_log("team-1", date(2026, 3, 14), "Other")

        assert again.title == "Session"
        assert again is not created


# ========== RUN TESTS ==========

class TestRuns:

    @pytest.mark.asyncio
    async def test_import_run_status(self, storage):
        run = await storage.create_import_run(ImportRun(team_id="team-1", source_system="NUCLINO"))

        updated = await storage.update_import_run_status(run.id, "deleted")

        assert updated.status == ImportRunStatus.DELETED
        with pytest.raises(ValidationError):
            await storage.update_import_run_status(run.id, "archived")

    @pytest.mark.asyncio
    async def test_enrichment_status_timestamps(self, storage, seed_import, seed_enrichment_run):
        run = await seed_enrichment_run(storage, await seed_import(storage, []))
        assert run.status == EnrichmentStatus.PENDING

        running = await storage.update_enrichment_run_status(run.id, EnrichmentStatus.RUNNING)
        assert running.started_at is not None
        assert running.completed_at is None

        completed = await storage.update_enrichment_run_status(run.id, EnrichmentStatus.COMPLETED)
        assert completed.completed_at is not None


# ========== CLASSIFICATION TESTS ==========

class TestClassifications:

    @pytest.mark.asyncio
    async def test_current_classification_is_newest(self, storage, add_note_classification):
        await add_note_classification("c1", "n1")
        await add_note_classification("c2", "n1")

        current = await storage.get_current_note_classification("n1")

        assert current.id == "c2"
        assert await storage.get_current_note_classification("n2") is None

    @pytest.mark.asyncio
    async def test_bulk_status_ignores_unknown_ids(self, storage, add_note_classification):
        await add_note_classification("c1", "n1")

        count = await storage.bulk_update_classification_status(["c1", "nope"], ReviewStatus.APPROVED, "user-1")

        assert count == 1
        assert (await storage.get_note_classification("c1")).approved_by_user_id == "user-1"
