"""Tests for the enrichment job queue and pipeline."""

import asyncio

import pytest

from helm_campaign.core.exceptions import APIClientError, DatabaseError, ProviderTimeoutError
from helm_campaign.models import EnrichmentStatus, NoteType
from helm_campaign.models.ai_models import ClassificationResult, NoteForClassification
from helm_campaign.models.enums import InferredEntityType, RelationshipType
from helm_campaign.services.ai.ai_cache import AICache
from helm_campaign.services.ai.mock_provider import MockAIProvider
from helm_campaign.services.enrichment.worker import (
    EnrichmentJob,
    EnrichmentWorker,
    extract_internal_links,
    prepare_notes_for_classification,
    prepare_notes_for_relationships,
)


class FailingProvider(MockAIProvider):
    """Fails classification for any batch containing a note titled 'Broken'."""

    async def classify_notes(self, notes, on_progress=None, options=None):
        if any(note.title == "Broken" for note in notes):
            raise APIClientError("AI service unavailable")
        return await super().classify_notes(notes, on_progress, options)


class SlowProvider(MockAIProvider):

    async def classify_notes(self, notes, on_progress=None, options=None):
        await asyncio.sleep(1)
        return await super().classify_notes(notes, on_progress, options)


class UnwritableCache(AICache):

    async def set_classification(self, note, pc_names, result, team_id):
        raise DatabaseError("cache table is read-only")


class UnreadableCache(AICache):

    async def get_classifications_batch(self, notes, pc_names, team_id):
        raise DatabaseError("cache table unavailable")


@pytest.fixture
def campaign_notes(make_note):
    return [
        make_note("n1", "Lord Vexmoor", "A scheming noble."),
        make_note("n2", "The City of Ironforge", "Home of [Lord Vexmoor](/notes/n1)."),
        make_note("n3", "Kettle", "Known tinkerer.", note_type=NoteType.NPC),
    ]


def _job(enrichment_run, **kwargs) -> EnrichmentJob:
    return EnrichmentJob(
        enrichment_run_id=enrichment_run.id,
        import_run_id=enrichment_run.import_run_id,
        team_id=enrichment_run.team_id,
        **kwargs,
    )


# ========== NOTE PREPARATION TESTS ==========

class TestNotePreparation:

    def test_settled_types_are_skipped(self, campaign_notes):
        prepared = prepare_notes_for_classification(campaign_notes)
        assert [note.id for note in prepared] == ["n1", "n2"]
        assert prepared[0].current_type == "note"

    def test_override_includes_settled_types(self, campaign_notes):
        prepared = prepare_notes_for_classification(campaign_notes, override_existing=True)
        assert [note.id for note in prepared] == ["n1", "n2", "n3"]

    def test_existing_links_use_titles(self, make_note):
        notes = [
            make_note("a", "Mill", linked_note_ids=["b", "zzz"]),
            make_note("b", "Miller"),
        ]
        prepared = prepare_notes_for_classification(notes)
        assert prepared[0].existing_links == ["Miller", "zzz"]

    def test_extract_internal_links(self, make_note):
        notes = {
            "a": make_note("a", "Mill", "See [the miller](/notes/b) and [ghost](/notes/x).", linked_note_ids=["b", "c"]),
            "b": make_note("b", "Miller"),
            "c": make_note("c", "River"),
        }

        links = extract_internal_links(notes["a"], notes)

        assert [(link.target_note_id, link.link_text) for link in links] == [("b", "the miller"), ("c", "River")]

    def test_relationship_view_uses_fresh_or_existing_type(self, campaign_notes):
        classifications = [ClassificationResult(note_id="n1", inferred_type=InferredEntityType.NPC, confidence=0.9)]

        prepared = {note.id: note for note in prepare_notes_for_relationships(campaign_notes, classifications)}

        assert prepared["n1"].inferred_type == InferredEntityType.NPC
        assert prepared["n2"].inferred_type == InferredEntityType.NOTE
        assert prepared["n3"].inferred_type == InferredEntityType.NPC
        assert [link.target_note_id for link in prepared["n2"].internal_links] == ["n1"]


# ========== PIPELINE TESTS ==========

class TestProcessJob:
    """Tests for EnrichmentWorker.process_job."""

    @pytest.mark.asyncio
    async def test_classifies_and_persists(self, storage, mock_provider, campaign_notes, seed_import, seed_enrichment_run):
        import_run = await seed_import(storage, campaign_notes)
        enrichment_run = await seed_enrichment_run(storage, import_run)
        mock_provider.add_mock_relationship("n1", "n2", RelationshipType.NPC_IN_PLACE, confidence=0.9)
        worker = EnrichmentWorker(storage, mock_provider)

        totals = await worker.process_job(_job(enrichment_run))

        classifications = await storage.get_note_classifications_by_enrichment_run(enrichment_run.id)
        assert {c.note_id: c.inferred_type for c in classifications} == {
            "n1": InferredEntityType.NPC,
            "n2": InferredEntityType.AREA,
        }
        assert all(c.status.value == "pending" for c in classifications)

        relationships = await storage.get_note_relationships_by_enrichment_run(enrichment_run.id)
        assert len(relationships) == 1
        assert relationships[0].relationship_type == RelationshipType.NPC_IN_PLACE

        assert totals.notes_processed == 3
        assert totals.classifications_created == 2
        assert totals.relationships_found == 1

        run = await storage.get_enrichment_run(enrichment_run.id)
        assert run.status == EnrichmentStatus.COMPLETED
        assert run.totals == totals
        assert run.started_at is not None
        assert run.completed_at is not None

    @pytest.mark.asyncio
    async def test_confidence_tallies(self, storage, mock_provider, campaign_notes, seed_import, seed_enrichment_run):
        import_run = await seed_import(storage, campaign_notes)
        enrichment_run = await seed_enrichment_run(storage, import_run)
        mock_provider.set_mock_classification("n1", InferredEntityType.NPC, confidence=0.9)
        mock_provider.set_mock_classification("n2", InferredEntityType.AREA, confidence=0.7)
        mock_provider.set_mock_classification("n3", InferredEntityType.NPC, confidence=0.4)
        mock_provider.add_mock_relationship("n1", "n2", confidence=0.5)
        worker = EnrichmentWorker(storage, mock_provider)

        totals = await worker.process_job(_job(enrichment_run, override_existing=True))

        assert totals.classifications_created == 3
        assert totals.high_confidence_count == 1
        assert totals.low_confidence_count == 2
        assert totals.user_review_required == 2

    @pytest.mark.asyncio
    async def test_empty_import_completes(self, storage, mock_provider, seed_import, seed_enrichment_run):
        import_run = await seed_import(storage, [])
        enrichment_run = await seed_enrichment_run(storage, import_run)
        worker = EnrichmentWorker(storage, mock_provider)

        totals = await worker.process_job(_job(enrichment_run))

        assert totals.notes_processed == 0
        assert mock_provider.classify_calls == []
        run = await storage.get_enrichment_run(enrichment_run.id)
        assert run.status == EnrichmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_relationship_endpoints_are_dropped(
        self, storage, mock_provider, campaign_notes, seed_import, seed_enrichment_run
    ):
        import_run = await seed_import(storage, campaign_notes)
        enrichment_run = await seed_enrichment_run(storage, import_run)
        mock_provider.add_mock_relationship("n1", "not-in-run")
        mock_provider.add_mock_relationship("n1", "n3")
        worker = EnrichmentWorker(storage, mock_provider)

        totals = await worker.process_job(_job(enrichment_run))

        relationships = await storage.get_note_relationships_by_enrichment_run(enrichment_run.id)
        assert [(r.from_note_id, r.to_note_id) for r in relationships] == [("n1", "n3")]
        assert totals.relationships_found == 1

    @pytest.mark.asyncio
    async def test_cache_hits_skip_provider(
        self, storage, mock_provider, ai_cache, campaign_notes, seed_import, seed_enrichment_run
    ):
        import_run = await seed_import(storage, campaign_notes)
        enrichment_run = await seed_enrichment_run(storage, import_run)
        cached_note = NoteForClassification(id="other", title="Lord Vexmoor", content="A scheming noble.")
        await ai_cache.set_classification(
            cached_note,
            ["Aria"],
            ClassificationResult(note_id="other", inferred_type=InferredEntityType.QUEST, confidence=0.88),
            "team-1",
        )
        worker = EnrichmentWorker(storage, mock_provider, cache=ai_cache)

        await worker.process_job(_job(enrichment_run, player_character_names=["Aria"]))

        assert mock_provider.classify_calls == [["n2"]]
        classifications = await storage.get_note_classifications_by_enrichment_run(enrichment_run.id)
        by_note = {c.note_id: c for c in classifications}
        assert by_note["n1"].inferred_type == InferredEntityType.QUEST
        # The fresh result for n2 was written back to the cache.
        assert len(storage.ai_cache) == 2

    @pytest.mark.asyncio
    async def test_cache_write_failure_does_not_fail_job(
        self, storage, mock_provider, campaign_notes, seed_import, seed_enrichment_run
    ):
        import_run = await seed_import(storage, campaign_notes)
        enrichment_run = await seed_enrichment_run(storage, import_run)
        worker = EnrichmentWorker(storage, mock_provider, cache=UnwritableCache(storage))

        totals = await worker.process_job(_job(enrichment_run))

        assert totals.classifications_created == 2
        run = await storage.get_enrichment_run(enrichment_run.id)
        assert run.status == EnrichmentStatus.COMPLETED
        assert storage.ai_cache == {}

    @pytest.mark.asyncio
    async def test_cache_lookup_failure_classifies_every_note(
        self, storage, mock_provider, campaign_notes, seed_import, seed_enrichment_run
    ):
        import_run = await seed_import(storage, campaign_notes)
        enrichment_run = await seed_enrichment_run(storage, import_run)
        worker = EnrichmentWorker(storage, mock_provider, cache=UnreadableCache(storage))

        totals = await worker.process_job(_job(enrichment_run))

        assert mock_provider.classify_calls == [["n1", "n2"]]
        assert totals.classifications_created == 2
        run = await storage.get_enrichment_run(enrichment_run.id)
        assert run.status == EnrichmentStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_provider_timeout(self, storage, campaign_notes, seed_import, seed_enrichment_run):
        import_run = await seed_import(storage, campaign_notes)
        enrichment_run = await seed_enrichment_run(storage, import_run)
        worker = EnrichmentWorker(storage, SlowProvider(), provider_timeout=0.01)

        with pytest.raises(ProviderTimeoutError):
            await worker.process_job(_job(enrichment_run))


# ========== QUEUE TESTS ==========

class TestQueue:
    """Tests for sequential draining and failure isolation."""

    @pytest.mark.asyncio
    async def test_failed_job_does_not_stop_queue(self, storage, make_note, seed_import, seed_enrichment_run):
        broken_run = await seed_enrichment_run(storage, await seed_import(storage, [make_note("b1", "Broken")]))
        good_run = await seed_enrichment_run(storage, await seed_import(storage, [make_note("g1", "Lord Vexmoor")]))
        worker = EnrichmentWorker(storage, FailingProvider())

        worker.enqueue(_job(broken_run))
        worker.enqueue(_job(good_run))
        await worker.wait_idle()

        failed = await storage.get_enrichment_run(broken_run.id)
        assert failed.status == EnrichmentStatus.FAILED
        assert failed.error_message == "AI service unavailable"
        assert failed.completed_at is not None

        completed = await storage.get_enrichment_run(good_run.id)
        assert completed.status == EnrichmentStatus.COMPLETED
        assert completed.totals.classifications_created == 1

        assert worker.queue_length == 0
        assert worker.is_busy is False

    @pytest.mark.asyncio
    async def test_timeout_marks_run_failed(self, storage, campaign_notes, seed_import, seed_enrichment_run):
        enrichment_run = await seed_enrichment_run(storage, await seed_import(storage, campaign_notes))
        worker = EnrichmentWorker(storage, SlowProvider(), provider_timeout=0.01)

        worker.enqueue(_job(enrichment_run))
        await worker.wait_idle()

        run = await storage.get_enrichment_run(enrichment_run.id)
        assert run.status == EnrichmentStatus.FAILED
        assert "timed out" in run.error_message

    @pytest.mark.asyncio
    async def test_jobs_run_in_order(self, storage, mock_provider, make_note, seed_import, seed_enrichment_run):
        runs = []
        for index in range(3):
            import_run = await seed_import(storage, [make_note(f"n{index}", f"Note {index}")])
            runs.append(await seed_enrichment_run(storage, import_run))
        worker = EnrichmentWorker(storage, mock_provider)

        for run in runs:
            worker.enqueue(_job(run))
        await worker.wait_idle()

        assert mock_provider.classify_calls == [["n0"], ["n1"], ["n2"]]

    def test_enqueue_without_running_loop_waits(self, storage, mock_provider):
        worker = EnrichmentWorker(storage, mock_provider)

        worker.enqueue(EnrichmentJob(enrichment_run_id="r", import_run_id="i", team_id="t"))

        assert worker.queue_length == 1
        assert worker.is_busy is False
        worker.clear()
        assert worker.queue_length == 0
