"""Heuristic (baseline) classification of parsed Nuclino pages."""

import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from helm_campaign.models.enums import CollectionType, NoteType, QuestStatus
from helm_campaign.models.nuclino import (
    CollectionInfo,
    ExportEntry,
    ImportSummary,
    NuclinoPage,
    PageClassification,
    ProcessedExport,
)
from helm_campaign.services.nuclino.parser import (
    NUCLINO_LINK_RE,
    detect_collection_type,
    is_collection_page,
    is_session_log_title,
    parse_nuclino_export,
    parse_nuclino_filename,
)
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

CollectionMembership = Dict[str, List[CollectionType]]


def normalize_party_names(names: Optional[Iterable[str]]) -> Set[str]:
    return {name.strip().lower() for name in (names or []) if name and name.strip()}


def detect_collection_pages(pages: Sequence[NuclinoPage]) -> Dict[str, CollectionInfo]:
    """Map source page ID to ``CollectionInfo`` for every collection page."""
    collections: Dict[str, CollectionInfo] = {}
    for page in pages:
        if is_collection_page(page.content, page.links):
            collections[page.source_page_id] = CollectionInfo(
                source_page_id=page.source_page_id,
                title=page.title,
                linked_page_ids=[link.target_page_id for link in page.links],
                collection_type=detect_collection_type(page.title),
            )
    return collections


def build_collection_membership(
    pages: Sequence[NuclinoPage],
    collections: Mapping[str, CollectionInfo],
) -> CollectionMembership:
    """Map each linked page ID to the distinct collection types that list it."""
    membership: CollectionMembership = {}
    for collection in collections.values():
        for page_id in collection.linked_page_ids:
            types = membership.setdefault(page_id, [])
            if collection.collection_type not in types:
                types.append(collection.collection_type)
    return membership


def classify_nuclino_page(
    page: NuclinoPage,
    membership: Mapping[str, Sequence[CollectionType]],
    collections: Mapping[str, CollectionInfo],
    party_member_names: Optional[Iterable[str]] = None,
) -> PageClassification:
    """Assign a baseline note type. First matching rule wins:

    1. the page is itself a collection -> note
    2. listed under notable people -> npc (character for party members)
    3. listed under places -> poi
    4. listed under done -> quest (done)
    5. listed under to do -> quest (active)
    6. session-log title -> session_log
    7. otherwise -> note
    """
    if page.source_page_id in collections:
        return PageClassification(note_type=NoteType.NOTE)

    member_of = membership.get(page.source_page_id, [])

    if CollectionType.NOTABLE_PEOPLE in member_of:
        if page.title.strip().lower() in normalize_party_names(party_member_names):
            return PageClassification(note_type=NoteType.CHARACTER)
        return PageClassification(note_type=NoteType.NPC)

    if CollectionType.PLACES in member_of:
        return PageClassification(note_type=NoteType.POI)

    if CollectionType.DONE in member_of:
        return PageClassification(note_type=NoteType.QUEST, quest_status=QuestStatus.DONE)

    if CollectionType.TODO in member_of:
        return PageClassification(note_type=NoteType.QUEST, quest_status=QuestStatus.ACTIVE)

    if is_session_log_title(page.title):
        return PageClassification(note_type=NoteType.SESSION_LOG)

    return PageClassification(note_type=NoteType.NOTE)


def resolve_nuclino_links(
    content: str,
    page_id_to_note_id: Mapping[str, str],
) -> Tuple[str, List[str]]:
    """Rewrite Nuclino links to ``/notes/{id}``; unknown targets become ``#unresolved``.

    Returns:
        The rewritten content and the link texts that could not be resolved
    """
    unresolved: List[str] = []

    def _replace(match: "re.Match[str]") -> str:
        text, target = match.group(1), match.group(2)
        target_filename = target[:-2] if target.endswith("?n") else target
        _, page_id = parse_nuclino_filename(target_filename)

        note_id = page_id_to_note_id.get(page_id)
        if note_id:
            return f"[{text}](/notes/{note_id})"
        unresolved.append(text)
        return f"[{text}](#unresolved)"

    return NUCLINO_LINK_RE.sub(_replace, content), unresolved


def generate_import_summary(
    pages: Sequence[NuclinoPage],
    classifications: Mapping[str, PageClassification],
) -> ImportSummary:
    """Count pages per baseline type. Session logs and collection pages count as notes."""
    summary = ImportSummary(total_pages=len(pages))

    for page in pages:
        if page.is_empty:
            summary.empty_pages += 1

        classification = classifications.get(page.source_page_id)
        if classification is None:
            continue

        if classification.note_type == NoteType.CHARACTER:
            summary.characters += 1
        elif classification.note_type == NoteType.NPC:
            summary.npcs += 1
        elif classification.note_type == NoteType.POI:
            summary.pois += 1
        elif classification.note_type == NoteType.QUEST:
            if classification.quest_status == QuestStatus.DONE:
                summary.quests_done += 1
            else:
                summary.quests_open += 1
        else:
            summary.notes += 1

    return summary


def process_nuclino_export(
    entries: Iterable[Union[ExportEntry, dict]],
    party_member_names: Optional[Iterable[str]] = None,
) -> ProcessedExport:
    """Parse and classify a whole export."""
    pages = parse_nuclino_export(entries)
    collections = detect_collection_pages(pages)
    membership = build_collection_membership(pages, collections)
    party = normalize_party_names(party_member_names)

    classifications = {
        page.source_page_id: classify_nuclino_page(page, membership, collections, party)
        for page in pages
    }
    summary = generate_import_summary(pages, classifications)

    LOGGER.info(
        "Classified Nuclino export",
        extra={
            "total_pages": summary.total_pages,
            "collections": len(collections),
            "npcs": summary.npcs,
            "pois": summary.pois,
        },
    )

    return ProcessedExport(
        pages=pages,
        collections=list(collections.values()),
        classifications=classifications,
        summary=summary,
    )
