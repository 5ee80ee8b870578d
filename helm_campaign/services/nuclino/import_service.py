"""Commit and rollback of Nuclino imports."""

from typing import Dict, Iterable, List, Optional, Set

from helm_campaign.core.exceptions import NotFoundError, NuclinoImportError
from helm_campaign.models import (
    EnrichmentRun,
    EnrichmentStatus,
    EnrichmentTotals,
    ImportOptions,
    ImportRun,
    ImportRunStatus,
    ImportStats,
    Note,
    NoteClassification,
    NoteImportSnapshot,
    NoteRelationship,
    NoteType,
    NoteVisibility,
)
from helm_campaign.models.ai_preview import AIImportPreview
from helm_campaign.models.enums import NUCLINO_SOURCE_SYSTEM
from helm_campaign.models.nuclino import (
    ImportCommitResult,
    ImportRollbackResult,
    NuclinoPage,
    PageClassification,
    ProcessedExport,
)
from helm_campaign.repositories.storage import Storage
from helm_campaign.services.ai.type_mapping import (
    HIGH_CONFIDENCE_THRESHOLD,
    REVIEW_THRESHOLD,
    map_inferred_type_to_note_type,
)
from helm_campaign.services.nuclino.classifier import resolve_nuclino_links
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)


class ImportService:
    """Writes a processed export into a team's notes.

    Every commit creates an ``ImportRun``. Notes created by the run carry its
    ID; notes it updated are snapshotted first, so ``rollback_import`` can
    restore them and delete the rest.
    """

    def __init__(self, storage: Storage):
        self.storage = storage

    async def commit_import(
        self,
        team_id: str,
        user_id: str,
        processed: ProcessedExport,
        options: Optional[ImportOptions] = None,
        excluded_empty_page_ids: Optional[Iterable[str]] = None,
        ai_preview: Optional[AIImportPreview] = None,
    ) -> ImportCommitResult:
        """Create or update one note per page, then resolve links between them.

        Args:
            team_id: Team receiving the notes
            user_id: Importing user
            processed: Output of ``process_nuclino_export``
            options: Empty-page and visibility options
            excluded_empty_page_ids: Empty pages to leave out. When omitted,
                ``options.import_empty_pages`` decides for all empty pages.
            ai_preview: When given, notes take the AI type instead of the
                baseline type, and the AI results are stored as a completed
                enrichment run of this import.

        Returns:
            ImportCommitResult with per-run counts and warnings

        Raises:
            NuclinoImportError: If the import run cannot be created or finalized
        """
        options = options or ImportOptions()
        ai_by_page_id = ai_preview.classifications_by_page_id() if ai_preview else {}
        excluded = self._excluded_page_ids(processed.pages, options, excluded_empty_page_ids)
        pages = [page for page in processed.pages if page.source_page_id not in excluded]
        is_private = options.default_visibility == NoteVisibility.PRIVATE

        try:
            import_run = await self.storage.create_import_run(ImportRun(
                team_id=team_id,
                source_system=NUCLINO_SOURCE_SYSTEM,
                status=ImportRunStatus.COMPLETED,
                options=options,
                created_by_user_id=user_id,
            ))
        except Exception as e:
            raise NuclinoImportError(f"Failed to create import run: {e}", e) from e

        LOGGER.info(
            "Committing Nuclino import",
            extra={"import_run_id": import_run.id, "team_id": team_id, "page_count": len(pages)},
        )

        result = ImportCommitResult(import_run_id=import_run.id)
        empty_imported = 0

        # First pass: create or update notes so every page has a note ID.
        for page in pages:
            classification = processed.classifications.get(page.source_page_id) or PageClassification(
                note_type=NoteType.NOTE
            )
            ai_classification = ai_by_page_id.get(page.source_page_id)
            if ai_classification is not None:
                classification = classification.model_copy(update={
                    "note_type": map_inferred_type_to_note_type(ai_classification.inferred_type),
                })
            try:
                note_id = await self._upsert_page(
                    team_id, user_id, import_run.id, page, classification, is_private, result
                )
            except Exception as e:
                LOGGER.warning(
                    f"Failed to import page {page.title}: {e}",
                    exc_info=True,
                    extra={"import_run_id": import_run.id, "source_page_id": page.source_page_id},
                )
                result.warnings.append(f"Failed to import: {page.title}")
                result.notes_skipped += 1
                continue
            result.note_ids_by_page_id[page.source_page_id] = note_id
            if page.is_empty:
                empty_imported += 1

        # Second pass: rewrite links now that all note IDs are known.
        links_resolved = 0
        for page in pages:
            note_id = result.note_ids_by_page_id.get(page.source_page_id)
            if note_id is None:
                continue
            resolved, unresolved = resolve_nuclino_links(page.content, result.note_ids_by_page_id)
            linked_note_ids = self._linked_note_ids(page, note_id, result.note_ids_by_page_id)
            await self.storage.update_note(
                note_id,
                content_markdown_resolved=resolved,
                linked_note_ids=linked_note_ids,
            )
            links_resolved += len(linked_note_ids)
            for link_text in unresolved:
                result.warnings.append(f'Unresolved link in "{page.title}": {link_text}')

        stats = ImportStats(
            total_pages_detected=processed.summary.total_pages,
            notes_created=result.notes_created,
            notes_updated=result.notes_updated,
            notes_skipped=result.notes_skipped,
            empty_pages_imported=empty_imported,
            links_resolved=links_resolved,
            warnings_count=len(result.warnings),
        )
        try:
            await self.storage.update_import_run(import_run.id, stats=stats)
        except Exception as e:
            raise NuclinoImportError(f"Failed to record import stats: {e}", e) from e

        if ai_preview is not None:
            try:
                result.enrichment_run_id = await self._record_ai_preview(
                    team_id, user_id, import_run.id, ai_preview, result.note_ids_by_page_id, len(pages)
                )
            except Exception as e:
                raise NuclinoImportError(f"Failed to record AI classifications: {e}", e) from e

        LOGGER.info(
            "Nuclino import committed",
            extra={
                "import_run_id": import_run.id,
                "enrichment_run_id": result.enrichment_run_id,
                **stats.model_dump(),
            },
        )
        return result

    async def _record_ai_preview(
        self,
        team_id: str,
        user_id: str,
        import_run_id: str,
        ai_preview: AIImportPreview,
        note_ids_by_page_id: Dict[str, str],
        notes_processed: int,
    ) -> str:
        """Store preview results as pending review records; returns the enrichment run ID."""
        run = await self.storage.create_enrichment_run(EnrichmentRun(
            import_run_id=import_run_id,
            team_id=team_id,
            created_by_user_id=user_id,
        ))

        totals = EnrichmentTotals(notes_processed=notes_processed)
        for item in ai_preview.ai_classifications:
            note_id = note_ids_by_page_id.get(item.source_page_id)
            if note_id is None:
                continue
            await self.storage.create_note_classification(NoteClassification(
                note_id=note_id,
                enrichment_run_id=run.id,
                inferred_type=item.inferred_type,
                confidence=item.confidence,
                explanation=item.explanation,
                extracted_entities=item.extracted_entities,
            ))
            totals.classifications_created += 1
            self._tally(totals, item.confidence)

        for item in ai_preview.relationships:
            from_note_id = note_ids_by_page_id.get(item.from_page_id)
            to_note_id = note_ids_by_page_id.get(item.to_page_id)
            if from_note_id is None or to_note_id is None:
                continue
            await self.storage.create_note_relationship(NoteRelationship(
                enrichment_run_id=run.id,
                from_note_id=from_note_id,
                to_note_id=to_note_id,
                relationship_type=item.relationship_type,
                confidence=item.confidence,
                evidence_snippet=item.evidence_snippet,
                evidence_type=item.evidence_type,
            ))
            totals.relationships_found += 1
            self._tally(totals, item.confidence)

        await self.storage.update_enrichment_run(run.id, totals=totals)
        await self.storage.update_enrichment_run_status(run.id, EnrichmentStatus.COMPLETED)
        return run.id

    @staticmethod
    def _tally(totals: EnrichmentTotals, confidence: float) -> None:
        if confidence >= HIGH_CONFIDENCE_THRESHOLD:
            totals.high_confidence_count += 1
        elif confidence < REVIEW_THRESHOLD:
            totals.low_confidence_count += 1
            totals.user_review_required += 1

    @staticmethod
    def _excluded_page_ids(
        pages: List[NuclinoPage],
        options: ImportOptions,
        excluded_empty_page_ids: Optional[Iterable[str]],
    ) -> Set[str]:
        empty_ids = {page.source_page_id for page in pages if page.is_empty}
        if excluded_empty_page_ids is not None:
            return empty_ids & set(excluded_empty_page_ids)
        return set() if options.import_empty_pages else empty_ids

    @staticmethod
    def _linked_note_ids(page: NuclinoPage, note_id: str, note_ids_by_page_id: Dict[str, str]) -> List[str]:
        linked: List[str] = []
        for link in page.links:
            target = note_ids_by_page_id.get(link.target_page_id)
            if target and target != note_id and target not in linked:
                linked.append(target)
        return linked

    async def _upsert_page(
        self,
        team_id: str,
        user_id: str,
        import_run_id: str,
        page: NuclinoPage,
        classification: PageClassification,
        is_private: bool,
        result: ImportCommitResult,
    ) -> str:
        fields = {
            "title": page.title,
            "content": page.content,
            "note_type": classification.note_type,
            "quest_status": classification.quest_status,
            "content_markdown": page.content_raw,
            "content_markdown_resolved": page.content,
            "import_run_id": import_run_id,
            "updated_by_user_id": user_id,
            "is_private": is_private,
        }

        existing = await self.storage.find_note_by_source_id(team_id, NUCLINO_SOURCE_SYSTEM, page.source_page_id)
        if existing is not None:
            await self.storage.create_note_import_snapshot(NoteImportSnapshot.from_note(existing, import_run_id))
            updated = await self.storage.update_note(existing.id, **fields)
            result.notes_updated += 1
            return updated.id

        created = await self.storage.create_note(Note(
            team_id=team_id,
            source_system=NUCLINO_SOURCE_SYSTEM,
            source_page_id=page.source_page_id,
            created_by_user_id=user_id,
            **fields,
        ))
        result.notes_created += 1
        return created.id

    async def rollback_import(self, import_run_id: str) -> ImportRollbackResult:
        """Undo an import: restore updated notes, delete created ones.

        Raises:
            NotFoundError: If the import run does not exist
        """
        import_run = await self.storage.get_import_run(import_run_id)
        if import_run is None:
            raise NotFoundError(f"Import run {import_run_id} not found")

        snapshots = await self.storage.get_snapshots_by_import_run(import_run_id)
        for snapshot in snapshots:
            await self.storage.restore_note_from_snapshot(snapshot.id)

        # Restored notes no longer carry the run ID, so only created notes remain.
        restored_ids = {snapshot.note_id for snapshot in snapshots}
        created_notes = [
            note for note in await self.storage.get_notes_by_import_run(import_run_id)
            if note.id not in restored_ids
        ]
        for note in created_notes:
            await self.storage.delete_note(note.id)

        await self.storage.delete_snapshots_by_import_run(import_run_id)
        await self.storage.update_import_run_status(import_run_id, ImportRunStatus.DELETED)

        LOGGER.info(
            "Import rolled back",
            extra={
                "import_run_id": import_run_id,
                "notes_deleted": len(created_notes),
                "notes_restored": len(snapshots),
            },
        )
        return ImportRollbackResult(
            import_run_id=import_run_id,
            notes_deleted=len(created_notes),
            notes_restored=len(snapshots),
        )
