"""Tests for baseline classification of Nuclino exports."""

import pytest

from helm_campaign.models.enums import CollectionType, NoteType, QuestStatus
from helm_campaign.services.nuclino.classifier import (
    build_collection_membership,
    classify_nuclino_page,
    detect_collection_pages,
    process_nuclino_export,
    resolve_nuclino_links,
)
from helm_campaign.services.nuclino.parser import parse_nuclino_export


def _collection(title: str, page_id: str, children) -> dict:
    lines = [f"- [{name}](<{name} {child_id}.md?n>)" for name, child_id in children]
    return {"filename": f"{title} {page_id}.md", "content": "\n".join(lines)}


def _page(title: str, page_id: str, content: str = "Some notes.") -> dict:
    return {"filename": f"{title} {page_id}.md", "content": content}


@pytest.fixture
def people_export():
    """Notable People index with three members plus one session log."""
    people = [("Kettle", "aaaaaaa1"), ("Mira", "aaaaaaa2"), ("Old Tom", "aaaaaaa3")]
    return [
        _collection("Notable People", "c0000001", people),
        _page("Kettle", "aaaaaaa1", "A gnome tinkerer who owes the party money."),
        _page("Mira", "aaaaaaa2", "Harbour master of Saltmere."),
        _page("Old Tom", "aaaaaaa3", "Runs the ferry."),
        _page("We find the body", "bbbbbbb1", "The body was in the mill."),
    ]


# ========== END-TO-END TESTS ==========

class TestProcessNuclinoExport:
    """Tests for the full parse-and-classify pass."""

    def test_people_collection_export(self, people_export):
        """Collection members become NPCs, the index itself a note."""
        processed = process_nuclino_export(people_export)

        types = {
            page.title: processed.classifications[page.source_page_id].note_type
            for page in processed.pages
        }
        assert types == {
            "Notable People": NoteType.NOTE,
            "Kettle": NoteType.NPC,
            "Mira": NoteType.NPC,
            "Old Tom": NoteType.NPC,
            "We find the body": NoteType.SESSION_LOG,
        }

        assert len(processed.collections) == 1
        assert processed.collections[0].collection_type == CollectionType.NOTABLE_PEOPLE
        assert processed.collections[0].linked_page_ids == ["aaaaaaa1", "aaaaaaa2", "aaaaaaa3"]

        summary = processed.summary
        assert summary.total_pages == 5
        assert summary.empty_pages == 0
        assert summary.npcs == 3
        assert summary.notes == 2
        assert summary.characters == 0

    def test_party_members_become_characters(self, people_export):
        processed = process_nuclino_export(people_export, party_member_names=["  kettle "])

        by_title = {page.title: page.source_page_id for page in processed.pages}
        assert processed.classifications[by_title["Kettle"]].note_type == NoteType.CHARACTER
        assert processed.classifications[by_title["Mira"]].note_type == NoteType.NPC
        assert processed.summary.characters == 1
        assert processed.summary.npcs == 2

    def test_quest_collections(self):
        export = [
            _collection("To Do", "c0000001", [("Find the key", "aaaaaaa1"), ("Map the caves", "aaaaaaa2"), ("Pay Kettle", "aaaaaaa3")]),
            _collection("Done", "c0000002", [("Rescue Mira", "bbbbbbb1"), ("Burn the mill", "bbbbbbb2"), ("Meet Tom", "bbbbbbb3")]),
            _page("Find the key", "aaaaaaa1"),
            _page("Rescue Mira", "bbbbbbb1"),
        ]
        processed = process_nuclino_export(export)

        open_quest = processed.classifications["aaaaaaa1"]
        done_quest = processed.classifications["bbbbbbb1"]
        assert (open_quest.note_type, open_quest.quest_status) == (NoteType.QUEST, QuestStatus.ACTIVE)
        assert (done_quest.note_type, done_quest.quest_status) == (NoteType.QUEST, QuestStatus.DONE)
        assert processed.summary.quests_open == 1
        assert processed.summary.quests_done == 1


# ========== PRIORITY TESTS ==========

class TestClassificationPriority:
    """Tests for rule order when a page is in several collections."""

    def test_people_wins_over_places_and_done(self):
        export = [
            _collection("People", "c0000001", [("Kettle", "aaaaaaa1"), ("Mira", "aaaaaaa2"), ("Tom", "aaaaaaa3")]),
            _collection("Places", "c0000002", [("Kettle", "aaaaaaa1"), ("Mill", "aaaaaaa4"), ("Harbour", "aaaaaaa5")]),
            _collection("Done", "c0000003", [("Kettle", "aaaaaaa1"), ("Quest A", "aaaaaaa6"), ("Quest B", "aaaaaaa7")]),
            _page("Kettle", "aaaaaaa1"),
        ]
        pages = parse_nuclino_export(export)
        collections = detect_collection_pages(pages)
        membership = build_collection_membership(pages, collections)

        kettle = next(page for page in pages if page.title == "Kettle")
        assert set(membership["aaaaaaa1"]) == {
            CollectionType.NOTABLE_PEOPLE, CollectionType.PLACES, CollectionType.DONE,
        }
        assert classify_nuclino_page(kettle, membership, collections).note_type == NoteType.NPC

    def test_places_wins_over_quests(self):
        export = [
            _collection("Places", "c0000002", [("Mill", "aaaaaaa4"), ("Harbour", "aaaaaaa5"), ("Caves", "aaaaaaa6")]),
            _collection("To Do", "c0000003", [("Mill", "aaaaaaa4"), ("Quest A", "aaaaaaa7"), ("Quest B", "aaaaaaa8")]),
            _page("Mill", "aaaaaaa4"),
        ]
        processed = process_nuclino_export(export)
        assert processed.classifications["aaaaaaa4"].note_type == NoteType.POI
        assert processed.classifications["aaaaaaa4"].quest_status is None

    def test_collection_page_stays_note_even_with_session_title(self):
        export = [
            _collection("Session 4", "c0000001", [("Kettle", "aaaaaaa1"), ("Mira", "aaaaaaa2"), ("Tom", "aaaaaaa3")]),
        ]
        processed = process_nuclino_export(export)
        assert processed.classifications["c0000001"].note_type == NoteType.NOTE

    def test_scene_setting_is_plain_note(self):
        processed = process_nuclino_export([
            _page("Scene Setting", "aaaaaaa1"),
            _page("Scene 1", "aaaaaaa2"),
        ])
        assert processed.classifications["aaaaaaa1"].note_type == NoteType.NOTE
        assert processed.classifications["aaaaaaa2"].note_type == NoteType.SESSION_LOG

    def test_empty_pages_are_counted(self):
        processed = process_nuclino_export([
            _page("Blank", "aaaaaaa1", ""),
            _page("Kettle", "aaaaaaa2"),
        ])
        assert processed.summary.empty_pages == 1
        assert processed.summary.total_pages == 2


# ========== LINK RESOLUTION TESTS ==========

class TestResolveNuclinoLinks:

    def test_known_and_unknown_targets(self):
        content = "See [Kettle](<Kettle aaaaaaa1.md?n>) and [Ghost](<Ghost ffffffff.md>)."
        resolved, unresolved = resolve_nuclino_links(content, {"aaaaaaa1": "note-1"})

        assert resolved == "See [Kettle](/notes/note-1) and [Ghost](#unresolved)."
        assert unresolved == ["Ghost"]

    def test_content_without_links_is_unchanged(self):
        assert resolve_nuclino_links("Plain text.", {}) == ("Plain text.", [])
