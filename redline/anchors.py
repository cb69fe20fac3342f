"""
Redline Anchors - Paragraph-addressable anchor tokens.

Anchoring inserts an inert token such as ``⟦P-00001⟧`` immediately before
every qualifying paragraph of the raw extracted text. Corrections proposed
by a model address text by anchor id plus an offset local to the anchored
paragraph, so the token format must stay byte-compatible with text that
was anchored upstream.

Rules:
- Paragraphs are separated by two or more consecutive newlines.
- Paragraphs shorter than the minimum length (after trimming) consume no
  anchor id, but the output still carries their text, so every anchor's
  offset addresses the anchored output and not a filtered subset.
- Ids are 1-based, strictly increasing and gap-free.
- A document without paragraph breaks is one anchored paragraph.
- Text that already carries anchor tokens is never re-anchored.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from logging_utils import Phase, PhaseLogger

from .models import AnchorEntry, AnchoringError

logger = logging.getLogger(__name__)

ANCHOR_OPEN = "⟦"
ANCHOR_CLOSE = "⟧"
ANCHOR_PREFIX = "P-"
ANCHOR_DIGITS = 5
MAX_ANCHOR_NUMBER = 10 ** ANCHOR_DIGITS - 1

ANCHOR_TOKEN_PATTERN = re.compile(
    re.escape(ANCHOR_OPEN) + r"P-(\d{5})" + re.escape(ANCHOR_CLOSE)
)
# Delimiter + "P-" + 5 digits + delimiter
ANCHOR_TOKEN_LENGTH = 1 + len(ANCHOR_PREFIX) + ANCHOR_DIGITS + 1

_ANCHOR_REFERENCE = re.compile(
    r"^\s*" + re.escape(ANCHOR_OPEN) + r"?\s*(?:P-)?(\d{1,5})\s*" + re.escape(ANCHOR_CLOSE) + r"?\s*$",
    re.IGNORECASE,
)
PARAGRAPH_BREAK = re.compile(r"(?:\r?\n){2,}")


# =============================================================================
# TOKEN HELPERS
# =============================================================================


def format_anchor_id(number: int) -> str:
    """Return the anchor id for a number, e.g. 1 -> "P-00001"."""
    if number < 1 or number > MAX_ANCHOR_NUMBER:
        raise AnchoringError(
            f"Anchor number {number} outside 1..{MAX_ANCHOR_NUMBER}"
        )
    return f"{ANCHOR_PREFIX}{number:0{ANCHOR_DIGITS}d}"


def format_anchor_token(number: int) -> str:
    """Return the full anchor token for a number, e.g. 1 -> "⟦P-00001⟧"."""
    return f"{ANCHOR_OPEN}{format_anchor_id(number)}{ANCHOR_CLOSE}"


def normalize_anchor_id(reference: Union[str, int, None]) -> Optional[str]:
    """
    Normalize an anchor reference to its canonical id.

    Accepts "P-00001", "⟦P-00001⟧", "p-1", "1" or the integer 1. Returns None for
    anything that is not an anchor reference.
    """
    if reference is None or isinstance(reference, bool):
        return None
    if isinstance(reference, int):
        number = reference
    else:
        match = _ANCHOR_REFERENCE.match(str(reference))
        if not match:
            return None
        number = int(match.group(1))
    if number < 1 or number > MAX_ANCHOR_NUMBER:
        return None
    return format_anchor_id(number)


def has_anchor_tokens(text: str) -> bool:
    """Check whether text already carries anchor tokens."""
    return bool(text) and ANCHOR_TOKEN_PATTERN.search(text) is not None


def strip_anchor_tokens(anchored_text: str) -> str:
    """Remove every anchor token, restoring the raw text."""
    return ANCHOR_TOKEN_PATTERN.sub("", anchored_text)


def _paragraph_spans(text: str) -> List[Tuple[int, int]]:
    """Character spans of the paragraphs between paragraph breaks."""
    spans: List[Tuple[int, int]] = []
    cursor = 0
    for match in PARAGRAPH_BREAK.finditer(text):
        spans.append((cursor, match.start()))
        cursor = match.end()
    spans.append((cursor, len(text)))
    return spans


# =============================================================================
# ANCHOR MAP
# =============================================================================


class AnchorMap:
    """
    Immutable lookup of anchors built once per anchored text.

    Lookups accept any reference understood by `normalize_anchor_id`.
    """

    def __init__(self, entries: Sequence[AnchorEntry]):
        self._entries: Tuple[AnchorEntry, ...] = tuple(entries)
        self._by_id: Dict[str, AnchorEntry] = {}
        for entry in self._entries:
            if entry.anchor_id in self._by_id:
                raise AnchoringError(f"Duplicate anchor id {entry.anchor_id}")
            self._by_id[entry.anchor_id] = entry
        self._token_offsets = [entry.token_offset for entry in self._entries]

    def get(self, reference: Union[str, int, None]) -> Optional[AnchorEntry]:
        anchor_id = normalize_anchor_id(reference)
        if anchor_id is None:
            return None
        return self._by_id.get(anchor_id)

    def __contains__(self, reference: Any) -> bool:
        return self.get(reference) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AnchorEntry]:
        return iter(self._entries)

    @property
    def entries(self) -> Tuple[AnchorEntry, ...]:
        return self._entries

    @property
    def ids(self) -> List[str]:
        return [entry.anchor_id for entry in self._entries]

    def is_sequential(self) -> bool:
        """True when ids run 1, 2, 3... with no gaps or duplicates."""
        return [entry.number for entry in self._entries] == list(
            range(1, len(self._entries) + 1)
        )

    def to_plain_offset(self, anchored_pos: int) -> int:
        """
        Convert an offset in the anchored text to the raw-text offset.

        Positions that fall inside a token are pinned to the token's start.
        """
        count_before = bisect.bisect_left(self._token_offsets, anchored_pos)
        if count_before:
            previous = self._entries[count_before - 1]
            if anchored_pos < previous.token_offset + ANCHOR_TOKEN_LENGTH:
                return previous.token_offset - (count_before - 1) * ANCHOR_TOKEN_LENGTH
        return anchored_pos - count_before * ANCHOR_TOKEN_LENGTH

    def to_dict(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": entry.anchor_id,
                "paragraphIndex": entry.paragraph_index,
                "absoluteOffset": entry.absolute_offset,
            }
            for entry in self._entries
        ]


def build_anchor_map(anchored_text: str, strict: bool = False) -> AnchorMap:
    """
    Rebuild the anchor map from text that already carries tokens.

    Args:
        anchored_text: Text anchored by `anchor_text` or by an upstream step
        strict: Also require gap-free sequential ids

    Returns:
        AnchorMap in token order

    Raises:
        AnchoringError: Duplicate ids, or non-sequential ids when strict
    """
    break_ends = [m.end() for m in PARAGRAPH_BREAK.finditer(anchored_text)]
    entries: List[AnchorEntry] = []
    for match in ANCHOR_TOKEN_PATTERN.finditer(anchored_text):
        number = int(match.group(1))
        entries.append(AnchorEntry(
            anchor_id=format_anchor_id(number),
            number=number,
            paragraph_index=bisect.bisect_right(break_ends, match.start()),
            absolute_offset=match.end(),
            token_offset=match.start(),
        ))

    anchor_map = AnchorMap(entries)
    if strict and not anchor_map.is_sequential():
        raise AnchoringError(
            f"Anchor ids are not sequential: {anchor_map.ids[:10]}"
        )
    return anchor_map


# =============================================================================
# ANCHORING
# =============================================================================


@dataclass
class AnchoringResult:
    """Anchored text plus the anchor map built while anchoring it."""

    original_text: str
    anchored_text: str
    anchor_map: AnchorMap
    already_anchored: bool = False

    @property
    def anchor_count(self) -> int:
        return len(self.anchor_map)

    def to_extraction_record(self) -> Dict[str, Any]:
        """The {original, anchored, anchorCount} record stored at extraction."""
        return {
            "original": self.original_text,
            "anchored": self.anchored_text,
            "anchorCount": self.anchor_count,
        }


def _qualifying_paragraphs(
    text: str, min_paragraph_length: int
) -> List[Tuple[int, int, bool]]:
    """(start, end, gets_anchor) for every paragraph span."""
    spans = _paragraph_spans(text)
    single_paragraph = len(spans) == 1
    paragraphs = []
    for start, end in spans:
        trimmed_length = len(text[start:end].strip())
        qualifies = trimmed_length > 0 and (
            single_paragraph or trimmed_length >= min_paragraph_length
        )
        paragraphs.append((start, end, qualifies))
    return paragraphs


def anchor_text(
    text: str,
    min_paragraph_length: Optional[int] = None,
    phase_logger: Optional[PhaseLogger] = None,
) -> AnchoringResult:
    """
    Insert anchor tokens before every qualifying paragraph.

    Args:
        text: Raw extracted text
        min_paragraph_length: Minimum trimmed paragraph length that receives
            an anchor (defaults to config.REDLINE.min_paragraph_length)
        phase_logger: Optional PhaseLogger reporting the ANCHORING phase

    Returns:
        AnchoringResult. Text that already contains anchors is returned
        unchanged with its existing map.

    Raises:
        AnchoringError: More than 99,999 qualifying paragraphs. The five
            digit token format cannot address them; nothing is anchored.

    Example:
        >>> anchor_text("Plaintiff alleges fraud.\\n\\nDefendant denies all claims.").anchored_text
        '⟦P-00001⟧Plaintiff alleges fraud.\\n\\n⟦P-00002⟧Defendant denies all claims.'
    """
    if min_paragraph_length is None:
        from config import config
        min_paragraph_length = config.REDLINE.min_paragraph_length

    if phase_logger is None:
        return _anchor(text, min_paragraph_length)
    with phase_logger.phase(Phase.ANCHORING, sub_label=f"{len(text)} chars"):
        result = _anchor(text, min_paragraph_length)
        phase_logger.info(
            f"{result.anchor_count} anchors"
            + (" (already anchored)" if result.already_anchored else "")
        )
        phase_logger.log_content_preview("ANCHORED", result.anchored_text)
    return result


def _anchor(text: str, min_paragraph_length: int) -> AnchoringResult:
    if has_anchor_tokens(text):
        logger.warning("Text already contains anchor tokens; skipping re-anchoring")
        return AnchoringResult(
            original_text=strip_anchor_tokens(text),
            anchored_text=text,
            anchor_map=build_anchor_map(text),
            already_anchored=True,
        )

    paragraphs = _qualifying_paragraphs(text, min_paragraph_length)
    anchor_total = sum(1 for _, _, qualifies in paragraphs if qualifies)
    if anchor_total > MAX_ANCHOR_NUMBER:
        raise AnchoringError(
            f"Document has {anchor_total} qualifying paragraphs; the anchor format "
            f"addresses at most {MAX_ANCHOR_NUMBER}"
        )

    parts: List[str] = []
    entries: List[AnchorEntry] = []
    cursor = 0
    out_len = 0
    next_number = 1

    for paragraph_index, (start, end, qualifies) in enumerate(paragraphs):
        separator = text[cursor:start]
        parts.append(separator)
        out_len += len(separator)

        paragraph = text[start:end]
        if qualifies:
            token = format_anchor_token(next_number)
            entries.append(AnchorEntry(
                anchor_id=format_anchor_id(next_number),
                number=next_number,
                paragraph_index=paragraph_index,
                absolute_offset=out_len + len(token),
                token_offset=out_len,
            ))
            parts.append(token)
            out_len += len(token)
            next_number += 1
        elif paragraph.strip():
            logger.debug(
                f"Paragraph {paragraph_index} too short for an anchor "
                f"({len(paragraph.strip())} < {min_paragraph_length} chars)"
            )

        parts.append(paragraph)
        out_len += len(paragraph)
        cursor = end

    anchored = "".join(parts)
    logger.info(
        f"Anchored {len(entries)} of {len(paragraphs)} paragraphs "
        f"({len(text)} -> {len(anchored)} chars)"
    )
    return AnchoringResult(
        original_text=text,
        anchored_text=anchored,
        anchor_map=AnchorMap(entries),
    )
