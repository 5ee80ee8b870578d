"""Nuclino export parser.

Turns the flat ``(filename, content)`` entries of a Nuclino export into
``NuclinoPage`` objects: decodes HTML entities, extracts cross-page links,
strips directory-tree noise and detects collection (index) pages.

Nuclino names every exported file ``<Title> <8 hex id>.md`` and writes
internal links as ``[Text](<Other Page 1a2b3c4d.md?n>)``.
"""

import hashlib
import re
from typing import Iterable, List, Sequence, Tuple, Union

from helm_campaign.models.enums import CollectionType
from helm_campaign.models.nuclino import ExportEntry, NuclinoLink, NuclinoPage
from helm_campaign.utils.logging import get_logger

LOGGER = get_logger(__name__)

MIN_COLLECTION_LINKS = 3

PEOPLE_COLLECTION_PATTERNS = [
    re.compile(r"^notable\s*people$", re.IGNORECASE),
    re.compile(r"^people$", re.IGNORECASE),
    re.compile(r"^npcs?$", re.IGNORECASE),
    re.compile(r"^characters?$", re.IGNORECASE),
]

PLACES_COLLECTION_PATTERNS = [
    re.compile(r"^places$", re.IGNORECASE),
    re.compile(r"^locations?$", re.IGNORECASE),
]

TODO_COLLECTION_PATTERNS = [
    re.compile(r"^to\s*do$", re.IGNORECASE),
    re.compile(r"^todo$", re.IGNORECASE),
    re.compile(r"^open\s*quests?$", re.IGNORECASE),
]

DONE_COLLECTION_PATTERNS = [
    re.compile(r"^done$", re.IGNORECASE),
    re.compile(r"^completed$", re.IGNORECASE),
    re.compile(r"^finished$", re.IGNORECASE),
]

SESSION_LOG_PATTERNS = [
    re.compile(r"^session\s*\d*", re.IGNORECASE),
    re.compile(r"^scene\s*\d*", re.IGNORECASE),
    re.compile(r"^journey\s", re.IGNORECASE),
    re.compile(r"^we\s+(find|save|meet|go|head|travel)", re.IGNORECASE),
    re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}"),
]
SESSION_LOG_EXCLUSION = re.compile(r"setting", re.IGNORECASE)

_DIRECTORY_PREFIX_RE = re.compile(r"^.*[\\/]")
_NUCLINO_FILENAME_RE = re.compile(r"^(.+?)\s+([a-f0-9]{8})\.md$", re.IGNORECASE)
_MD_SUFFIX_RE = re.compile(r"\.md$", re.IGNORECASE)
NUCLINO_LINK_RE = re.compile(r"\[([^\]]+)\]\(<([^>]+\.md(?:\?n)?)\s*>\)")
_TREE_LINE_RE = re.compile(r"^[ \t]*[│├└─┬┴┼┤]+[─ ]*[^\n]*$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_HEX_ENTITY_RE = re.compile(r"&#x([0-9a-f]+);", re.IGNORECASE)
_DEC_ENTITY_RE = re.compile(r"&#(\d+);")
_HEADER_RE = re.compile(r"^#+\s*", re.MULTILINE)
_BULLET_RE = re.compile(r"^\s*[-*]\s*", re.MULTILINE)
_WHITESPACE_RE = re.compile(r"\s+")

_NAMED_ENTITIES = [
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&nbsp;", " "),
]


def is_session_log_title(title: str) -> bool:
    """Whether a title looks like a session log ("Session 3", "We find the body", "5/12/24").

    Any title containing "setting" is rejected first, so "Scene Setting" is
    not a session log even though it starts with "Scene".
    """
    if SESSION_LOG_EXCLUSION.search(title):
        return False
    return any(pattern.search(title) for pattern in SESSION_LOG_PATTERNS)


def clean_title(title: str) -> str:
    """Undo Nuclino's filename escaping: ``" _ "`` -> ``" / "``, ``"_"`` -> ``"/"``."""
    return title.replace(" _ ", " / ").replace("_", "/").strip()


def generate_pseudo_id(text: str) -> str:
    """Deterministic 8-hex-char ID for files without a Nuclino ID."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:8]


def parse_nuclino_filename(filename: str) -> Tuple[str, str]:
    """Split a Nuclino filename into ``(title, source_page_id)``.

    Never raises: names that don't follow the ``<title> <8 hex>.md``
    convention get a pseudo-ID derived from the name.

    Example:
        >>> parse_nuclino_filename("Kettle 03183b35.md")
        ('Kettle', '03183b35')
    """
    basename = _DIRECTORY_PREFIX_RE.sub("", filename)

    match = _NUCLINO_FILENAME_RE.match(basename)
    if not match:
        title_without_ext = _MD_SUFFIX_RE.sub("", basename)
        return clean_title(title_without_ext), generate_pseudo_id(title_without_ext)

    return clean_title(match.group(1)), match.group(2).lower()


def _decode_codepoint(raw: str, base: int, original: str) -> str:
    try:
        return chr(int(raw, base))
    except (ValueError, OverflowError):
        return original


def decode_html_entities(text: str) -> str:
    """Decode hex, decimal and the six common named HTML entities.

    Code points outside the Unicode range are left as written.
    """
    text = _HEX_ENTITY_RE.sub(lambda m: _decode_codepoint(m.group(1), 16, m.group(0)), text)
    text = _DEC_ENTITY_RE.sub(lambda m: _decode_codepoint(m.group(1), 10, m.group(0)), text)
    for entity, replacement in _NAMED_ENTITIES:
        text = text.replace(entity, replacement)
    return text


def extract_nuclino_links(content: str) -> List[NuclinoLink]:
    links = []
    for match in NUCLINO_LINK_RE.finditer(content):
        text, target = match.group(1), match.group(2)
        target_filename = target[:-2] if target.endswith("?n") else target
        _, target_page_id = parse_nuclino_filename(target_filename)
        links.append(NuclinoLink(
            text=text,
            target_filename=target_filename,
            target_page_id=target_page_id,
            full_match=match.group(0),
        ))
    return links


def strip_directory_structure(content: str) -> str:
    """Drop lines starting with box-drawing characters and collapse blank runs."""
    stripped = _TREE_LINE_RE.sub("", content)
    return _BLANK_RUN_RE.sub("\n\n", stripped).strip()


def parse_nuclino_content(markdown: str) -> Tuple[str, List[NuclinoLink]]:
    """Decode entities, extract links and strip tree art from page markdown."""
    decoded = decode_html_entities(markdown)
    links = extract_nuclino_links(decoded)
    return strip_directory_structure(decoded).strip(), links


def is_collection_page(content: str, links: Sequence[NuclinoLink]) -> bool:
    """Whether a page is mostly a list of links.

    Requires at least three links, and the text left after removing link
    spans, headers, bullets and surplus whitespace must be shorter than
    three times the average link-text length.
    """
    if len(links) < MIN_COLLECTION_LINKS:
        return False

    remaining = content
    for link in links:
        remaining = remaining.replace(link.full_match, "", 1)

    remaining = _HEADER_RE.sub("", remaining)
    remaining = _BULLET_RE.sub("", remaining)
    remaining = _WHITESPACE_RE.sub(" ", remaining.replace("\n", " ")).strip()

    average_link_text = sum(len(link.text) for link in links) / len(links)
    return len(remaining) < average_link_text * 3


def detect_collection_type(title: str) -> CollectionType:
    normalized = title.strip()
    if any(p.search(normalized) for p in PEOPLE_COLLECTION_PATTERNS):
        return CollectionType.NOTABLE_PEOPLE
    if any(p.search(normalized) for p in PLACES_COLLECTION_PATTERNS):
        return CollectionType.PLACES
    if any(p.search(normalized) for p in TODO_COLLECTION_PATTERNS):
        return CollectionType.TODO
    if any(p.search(normalized) for p in DONE_COLLECTION_PATTERNS):
        return CollectionType.DONE
    return CollectionType.OTHER


def parse_nuclino_page(entry: ExportEntry) -> NuclinoPage:
    title, source_page_id = parse_nuclino_filename(entry.filename)
    content, links = parse_nuclino_content(entry.content)
    return NuclinoPage(
        filename=entry.filename,
        source_page_id=source_page_id,
        title=title,
        content=content,
        content_raw=entry.content,
        links=links,
        is_empty=not content.strip(),
        last_modified=entry.last_modified,
    )


def parse_nuclino_export(entries: Iterable[Union[ExportEntry, dict]]) -> List[NuclinoPage]:
    """Parse every ``.md`` entry of an export; other files are ignored."""
    pages = []
    skipped = 0
    for raw_entry in entries:
        entry = raw_entry if isinstance(raw_entry, ExportEntry) else ExportEntry.model_validate(raw_entry)
        if not entry.filename.lower().endswith(".md"):
            skipped += 1
            continue
        pages.append(parse_nuclino_page(entry))

    LOGGER.info(
        f"Parsed {len(pages)} Nuclino pages",
        extra={"pages": len(pages), "skipped_files": skipped},
    )
    return pages
