"""Tests for AI cache key generation and algorithm versions."""

from helm_campaign.models import CacheType
from helm_campaign.models.ai_models import NoteForClassification
from helm_campaign.services.ai.cache_keys import (
    CONTENT_TRUNCATE_LENGTH,
    compute_content_hash,
    compute_context_hash,
    compute_pair_hash,
    generate_classification_cache_key,
    generate_relationship_cache_key,
    normalize_for_hash,
)
from helm_campaign.services.ai.cache_versions import (
    get_current_version,
    get_version_history,
    is_current_version,
)


class TestNormalization:

    def test_normalize_strips_markdown_and_whitespace(self):
        assert normalize_for_hash("  # **Lord**   _Vexmoor_\n\n`x` [link] ") == "lord vexmoor x link"

    def test_normalize_empty(self):
        assert normalize_for_hash(None) == ""
        assert normalize_for_hash("") == ""


class TestContentHash:

    def test_formatting_differences_hash_equal(self):
        assert compute_content_hash("Lord Vexmoor", "A **noble**  of the court") == compute_content_hash(
            "lord vexmoor", "a noble of the court"
        )

    def test_title_change_changes_hash(self):
        assert compute_content_hash("Lord Vexmoor", "A noble") != compute_content_hash("Lady Vexmoor", "A noble")

    def test_title_and_content_are_separated(self):
        assert compute_content_hash("ab", "c") != compute_content_hash("a", "bc")

    def test_content_beyond_limit_is_ignored(self):
        base = "x" * CONTENT_TRUNCATE_LENGTH
        assert compute_content_hash("T", base + "tail one") == compute_content_hash("T", base + "tail two")


class TestContextHash:

    def test_order_case_and_duplicates_do_not_matter(self):
        assert compute_context_hash(["Aria", "Bram"]) == compute_context_hash(["bram", " ARIA ", "aria"])

    def test_empty_context_is_stable(self):
        assert compute_context_hash([]) == compute_context_hash(None)
        assert compute_context_hash([]) == compute_context_hash(["  "])
        assert compute_context_hash([]) != compute_context_hash(["Aria"])


class TestGeneratedKeys:

    def test_classification_key_ignores_note_id(self):
        first = NoteForClassification(id="a", title="Kettle", content="Tinkerer")
        second = NoteForClassification(id="b", title="Kettle", content="Tinkerer")

        assert generate_classification_cache_key(first, ["Aria"], "1.0.0") == generate_classification_cache_key(
            second, ["Aria"], "1.0.0"
        )

    def test_version_travels_beside_hash(self):
        note = NoteForClassification(id="a", title="Kettle", content="Tinkerer")
        v1 = generate_classification_cache_key(note, [], "1.0.0")
        v2 = generate_classification_cache_key(note, [], "2.0.0")

        assert v1.content_hash == v2.content_hash
        assert v1 != v2

    def test_relationship_key_is_symmetric(self):
        a = NoteForClassification(id="a", title="Kettle", content="Tinkerer")
        b = NoteForClassification(id="b", title="Mill", content="Old mill")

        assert generate_relationship_cache_key(a, b, "1.0.0") == generate_relationship_cache_key(b, a, "1.0.0")
        assert compute_pair_hash("x", "y") == compute_pair_hash("y", "x")


class TestCacheVersions:

    def test_current_versions(self):
        assert get_current_version(CacheType.CLASSIFICATION) == "1.0.0"
        assert get_current_version("relationship") == "1.0.0"

    def test_is_current_version(self):
        assert is_current_version(CacheType.CLASSIFICATION, "1.0.0") is True
        assert is_current_version(CacheType.CLASSIFICATION, "0.9.0") is False

    def test_history_contains_current(self):
        history = get_version_history(CacheType.CLASSIFICATION)
        assert get_current_version(CacheType.CLASSIFICATION) in [entry.version for entry in history]
