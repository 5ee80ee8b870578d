"""Stable cache keys for AI results.

Hashes are pure and version-agnostic. The algorithm version travels next
to the hash in the cache entry rather than being folded into it.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

CONTENT_TRUNCATE_LENGTH = 2000
NO_PC_CONTEXT = "no-pc-context"

_MARKDOWN_MARKERS_RE = re.compile(r"[#*_\[\]`]")
_WHITESPACE_RE = re.compile(r"\s+")


class HashableNote(Protocol):
    title: str
    content: Optional[str]


@dataclass(frozen=True)
class ClassificationCacheKey:
    content_hash: str
    context_hash: str
    algorithm_version: str


@dataclass(frozen=True)
class RelationshipCacheKey:
    pair_hash: str
    algorithm_version: str


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def normalize_for_hash(text: Optional[str]) -> str:
    """Lowercase, drop markdown markers, collapse whitespace, trim."""
    if not text:
        return ""
    normalized = _MARKDOWN_MARKERS_RE.sub("", text.lower())
    return _WHITESPACE_RE.sub(" ", normalized).strip()


def compute_content_hash(title: Optional[str], content: Optional[str]) -> str:
    # Truncated after normalization.
    normalized_content = normalize_for_hash(content)[:CONTENT_TRUNCATE_LENGTH]
    return _sha256(f"{normalize_for_hash(title)}\u0000{normalized_content}")


def compute_context_hash(pc_names: Optional[Iterable[str]]) -> str:
    names = sorted({name.strip().lower() for name in (pc_names or []) if name and name.strip()})
    if not names:
        return _sha256(NO_PC_CONTEXT)
    return _sha256("|".join(names))


def compute_pair_hash(hash_a: str, hash_b: str) -> str:
    first, second = sorted((hash_a, hash_b))
    return _sha256(f"{first}::{second}")


def generate_classification_cache_key(
    note: HashableNote,
    pc_names: Optional[Iterable[str]],
    algorithm_version: str,
) -> ClassificationCacheKey:
    return ClassificationCacheKey(
        content_hash=compute_content_hash(note.title, note.content),
        context_hash=compute_context_hash(pc_names),
        algorithm_version=algorithm_version,
    )


def generate_relationship_cache_key(
    from_note: HashableNote,
    to_note: HashableNote,
    algorithm_version: str,
) -> RelationshipCacheKey:
    """Symmetric key: swapping the notes yields the same pair hash."""
    return RelationshipCacheKey(
        pair_hash=compute_pair_hash(
            compute_content_hash(from_note.title, from_note.content),
            compute_content_hash(to_note.title, to_note.content),
        ),
        algorithm_version=algorithm_version,
    )
