"""
Redline Position Mapping - Plain text <-> HTML character offsets.

The mapping is produced by a single forward scan over the HTML that tracks
whether the cursor is inside a tag (between ``<`` and ``>``) or inside an
entity (between ``&`` and ``;``). Characters inside a tag or an open entity
do not advance the plain-text position; a completed entity counts as one
plain-text character whose entry points right after its terminating ``;``.

The resulting list is dense: ``mapping[i].plain_text_pos == i``.

Known limitation: `map_html_to_plain_text` returns 0 for an HTML offset
that no entry points at (any offset inside a tag, for example). It does not
snap to the nearest boundary.
"""

from __future__ import annotations

import html
import logging
import re
from functools import cached_property
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from .models import PositionMapEntry

logger = logging.getLogger(__name__)

# Well-formed entity bodies: &amp;  &#160;  &#xA0;
_ENTITY_AT = re.compile(r"&(?:[A-Za-z][A-Za-z0-9]{0,31}|#[0-9]{1,7}|#[xX][0-9A-Fa-f]{1,6});")
_TAG = re.compile(r"<[^>]*>")
_WHITESPACE_RUN = re.compile(r"\s+")


# =============================================================================
# MAPPING
# =============================================================================


def create_position_mapping(html_content: str) -> List[PositionMapEntry]:
    """
    Build the dense plain-text -> HTML position mapping.

    Args:
        html_content: HTML (or plain text) to scan

    Returns:
        List of PositionMapEntry, one per visible plain-text character

    Example:
        >>> [e.html_pos for e in create_position_mapping("<b>Hi</b>")]
        [3, 4]
    """
    mapping: List[PositionMapEntry] = []
    plain_text_pos = 0
    html_pos = 0
    inside_tag = False
    inside_entity = False
    entity_start = 0
    length = len(html_content)

    while html_pos < length:
        char = html_content[html_pos]

        if inside_entity:
            if char == ";":
                inside_entity = False
                mapping.append(PositionMapEntry(
                    plain_text_pos=plain_text_pos,
                    html_pos=html_pos + 1,
                    is_entity=True,
                    entity_length=html_pos + 1 - entity_start,
                ))
                plain_text_pos += 1
            html_pos += 1
            continue

        if inside_tag:
            if char == ">":
                inside_tag = False
            html_pos += 1
            continue

        if char == "<":
            inside_tag = True
            html_pos += 1
            continue

        # A bare "&" (no well-formed entity body) is an ordinary character
        if char == "&" and _ENTITY_AT.match(html_content, html_pos):
            inside_entity = True
            entity_start = html_pos
            html_pos += 1
            continue

        mapping.append(PositionMapEntry(plain_text_pos=plain_text_pos, html_pos=html_pos))
        plain_text_pos += 1
        html_pos += 1

    logger.debug(
        f"Position mapping created: {len(mapping)} plain chars from {length} HTML chars"
    )
    return mapping


def map_plain_text_to_html(plain_text_pos: int, mapping: List[PositionMapEntry]) -> int:
    """
    Map a plain-text offset to its HTML offset.

    Offsets below range clamp to 0; offsets past the end clamp to the last
    entry's HTML offset.
    """
    if not mapping or plain_text_pos < 0:
        return 0
    if plain_text_pos >= len(mapping):
        return mapping[-1].html_pos
    return mapping[plain_text_pos].html_pos


def map_html_to_plain_text(html_pos: int, mapping: List[PositionMapEntry]) -> int:
    """
    Map an HTML offset back to its plain-text offset.

    Returns the first entry whose html_pos equals `html_pos`, or 0 when no
    entry points there (e.g. inside a tag).
    """
    for entry in mapping:
        if entry.html_pos == html_pos:
            return entry.plain_text_pos
    return 0


# =============================================================================
# PLAIN TEXT EXTRACTION
# =============================================================================


def normalize_extracted_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE_RUN.sub(" ", text).strip()


def strip_tags(html_content: str) -> str:
    """Regex fallback: drop tags, decode entities, normalize whitespace."""
    return normalize_extracted_text(html.unescape(_TAG.sub("", html_content)))


def extract_plain_text(html_content: str) -> str:
    """
    Extract normalized plain text from HTML.

    Uses an HTML parser for text extraction. The regex fallback applies the
    same whitespace normalization so both paths agree for matching.
    """
    if not html_content:
        return ""
    try:
        text = BeautifulSoup(html_content, "html.parser").get_text()
    except Exception as e:
        logger.warning(f"HTML parsing failed, falling back to tag stripping: {e}")
        return strip_tags(html_content)
    return normalize_extracted_text(text)


# =============================================================================
# VALIDATION
# =============================================================================


def validate_position_range(
    content: str,
    start_pos: int,
    end_pos: int,
    expected_text: str,
    content_source: str = "unknown",
) -> bool:
    """Check that content[start_pos:end_pos] is exactly `expected_text`."""
    if start_pos < 0 or end_pos > len(content) or start_pos >= end_pos:
        logger.warning(
            f"Invalid position range [{start_pos}, {end_pos}) for content of "
            f"length {len(content)} (source: {content_source})"
        )
        return False

    actual = content[start_pos:end_pos]
    if actual != expected_text:
        logger.warning(
            f"Position validation failed at [{start_pos}, {end_pos}) "
            f"(source: {content_source}): expected {expected_text[:40]!r}, "
            f"found {actual[:40]!r}"
        )
        return False
    return True


# =============================================================================
# MAPPER
# =============================================================================


class PositionMapper:
    """
    Position mapping bound to one HTML string.

    Read-only after construction, so one instance can be shared between
    threads.

    Example:
        mapper = PositionMapper("<p>Smith&nbsp;v.&nbsp;Jones</p>")
        mapper.plain_text            # 'Smith\\xa0v.\\xa0Jones'
        mapper.html_span(0, 5)       # (3, 8)
    """

    def __init__(self, html_content: str):
        self.html_content = html_content
        self.mapping = create_position_mapping(html_content)

    def __len__(self) -> int:
        return len(self.mapping)

    def plain_to_html(self, plain_text_pos: int) -> int:
        return map_plain_text_to_html(plain_text_pos, self.mapping)

    def html_to_plain(self, html_pos: int) -> int:
        return map_html_to_plain_text(html_pos, self.mapping)

    @cached_property
    def plain_text(self) -> str:
        """Visible characters, one per mapping entry, entities decoded."""
        chars: List[str] = []
        for entry in self.mapping:
            if entry.is_entity:
                decoded = html.unescape(self.html_content[entry.html_start:entry.html_end])
                # Multi-character or unknown entities still occupy one slot
                chars.append(decoded if len(decoded) == 1 else "\ufffd")
            else:
                chars.append(self.html_content[entry.html_pos])
        return "".join(chars)

    def html_span(self, plain_start: int, plain_end: int) -> Optional[Tuple[int, int]]:
        """
        HTML span covering the plain-text range [plain_start, plain_end).

        Returns None for an empty or out-of-range plain range.
        """
        if plain_start < 0 or plain_end > len(self.mapping) or plain_start >= plain_end:
            return None
        return (
            self.mapping[plain_start].html_start,
            self.mapping[plain_end - 1].html_end,
        )
