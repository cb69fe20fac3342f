"""
Redline Locators - Best-effort text location with a graduated fallback chain.

Text echoed back by a model commonly differs from the source in case,
whitespace or markup splitting. `locate_text` tries, in order, and the
first success wins:

0. The caller's expected start position, when one is given
1. Exact substring search from `start_from_pos`
2. Case-insensitive search
3. Partial word search: find any word of the needle longer than two
   characters, then look for the whole needle in a window around the hit
4. Position-mapping search: match against the visible text of the HTML,
   then map the range back to HTML offsets and sanity-check the span

Ranges are returned in the haystack's own coordinates, end exclusive.
`None` means every strategy failed ("locator exhausted"); the caller
decides how to surface it.

All functions are pure and safe to call concurrently.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .models import TextRange
from .position_mapping import PositionMapper, extract_plain_text, normalize_extracted_text

logger = logging.getLogger(__name__)


class LocatorStrategy(str, Enum):
    """Which strategy produced a match."""

    EXPECTED_POSITION = "expected_position"
    EXACT = "exact"
    CASE_INSENSITIVE = "case_insensitive"
    PARTIAL_WORD = "partial_word"
    POSITION_MAPPING = "position_mapping"


@dataclass(frozen=True)
class LocatorMatch:
    """A located range plus the strategy that found it."""

    start: int
    end: int
    strategy: LocatorStrategy

    @property
    def range(self) -> TextRange:
        return TextRange(self.start, self.end)


# =============================================================================
# STRATEGIES
# =============================================================================


def _find_exact(haystack: str, needle: str, start_from_pos: int) -> Optional[Tuple[int, int]]:
    index = haystack.find(needle, start_from_pos)
    if index == -1:
        return None
    return (index, index + len(needle))


def _find_case_insensitive(
    haystack: str, needle: str, start_from_pos: int
) -> Optional[Tuple[int, int]]:
    lower_haystack = haystack.lower()
    lower_needle = needle.lower()
    # Lowercasing can change length for a few code points; offsets would drift
    if len(lower_haystack) != len(haystack) or len(lower_needle) != len(needle):
        return None
    index = lower_haystack.find(lower_needle, start_from_pos)
    if index == -1:
        return None
    return (index, index + len(needle))


def _find_by_partial_words(
    haystack: str,
    needle: str,
    start_from_pos: int,
    window: int,
    min_word_length: int,
) -> Optional[Tuple[int, int]]:
    words = [w for w in re.split(r"\s+", needle) if len(w) >= min_word_length]
    if len(words) < 2:
        return None

    for word in words:
        word_index = haystack.find(word, start_from_pos)
        if word_index == -1:
            continue
        context_start = max(0, word_index - window)
        context_end = min(len(haystack), word_index + len(needle) + window)
        index = haystack.find(needle, context_start, context_end)
        if index != -1:
            logger.debug(f"Partial word '{word}' led to full match at {index}")
            return (index, index + len(needle))
    return None


def _normalized_visible_text(visible: str) -> Tuple[str, List[int]]:
    """Collapse whitespace runs, keeping the visible index of every kept char."""
    chars: List[str] = []
    index_map: List[int] = []
    in_whitespace = False
    for i, char in enumerate(visible):
        if char.isspace():
            if in_whitespace:
                continue
            in_whitespace = True
            chars.append(" ")
        else:
            in_whitespace = False
            chars.append(char)
        index_map.append(i)
    return "".join(chars), index_map


def _span_is_sane(haystack: str, span: Tuple[int, int], target: str) -> bool:
    start, end = span
    if end <= start or end > len(haystack):
        return False
    if end - start < len(target):
        return False
    return extract_plain_text(haystack[start:end]) == target


def _find_by_position_mapping(
    haystack: str, needle: str, start_from_pos: int
) -> Optional[Tuple[int, int]]:
    target = normalize_extracted_text(needle)
    if not target:
        return None

    mapper = PositionMapper(haystack)
    normalized, index_map = _normalized_visible_text(mapper.plain_text)

    search_from = 0
    while True:
        index = normalized.find(target, search_from)
        if index == -1:
            return None
        span = mapper.html_span(index_map[index], index_map[index + len(target) - 1] + 1)
        if span is not None and span[0] >= start_from_pos:
            if _span_is_sane(haystack, span, target):
                return span
            logger.debug(f"Mapped span {span} failed sanity check, continuing")
        search_from = index + 1


# =============================================================================
# PUBLIC API
# =============================================================================


def locate_text(
    haystack: str,
    needle: str,
    start_from_pos: int = 0,
    expected_start: Optional[int] = None,
    window: Optional[int] = None,
    min_word_length: Optional[int] = None,
) -> Optional[LocatorMatch]:
    """
    Locate `needle` in `haystack` (HTML or plain text).

    Args:
        haystack: Text to search in
        needle: Text to find (surrounding whitespace is ignored)
        start_from_pos: Haystack offset where searching starts
        expected_start: Optional position to validate before searching
        window: Partial-match window (defaults to config)
        min_word_length: Minimum word length for partial matching (defaults to config)

    Returns:
        LocatorMatch, or None when all strategies fail
    """
    if window is None or min_word_length is None:
        from config import config
        if window is None:
            window = config.REDLINE.partial_match_window
        if min_word_length is None:
            min_word_length = config.REDLINE.min_partial_word_length

    clean_needle = (needle or "").strip()
    if not clean_needle or not haystack:
        return None
    start_from_pos = min(max(0, start_from_pos), len(haystack))

    if expected_start is not None and expected_start >= 0:
        expected_end = expected_start + len(clean_needle)
        if haystack[expected_start:expected_end] == clean_needle:
            return LocatorMatch(expected_start, expected_end, LocatorStrategy.EXPECTED_POSITION)
        logger.debug(f"Expected position {expected_start} does not hold the needle")

    strategies = (
        (LocatorStrategy.EXACT, lambda: _find_exact(haystack, clean_needle, start_from_pos)),
        (LocatorStrategy.CASE_INSENSITIVE,
         lambda: _find_case_insensitive(haystack, clean_needle, start_from_pos)),
        (LocatorStrategy.PARTIAL_WORD,
         lambda: _find_by_partial_words(
             haystack, clean_needle, start_from_pos, window, min_word_length
         )),
        (LocatorStrategy.POSITION_MAPPING,
         lambda: _find_by_position_mapping(haystack, clean_needle, start_from_pos)),
    )

    for strategy, attempt in strategies:
        found = attempt()
        if found is not None:
            logger.debug(
                f"Located '{clean_needle[:40]}' at {found} via {strategy.value}"
            )
            return LocatorMatch(found[0], found[1], strategy)

    logger.warning(
        f"Locator exhausted: could not find '{clean_needle[:60]}' "
        f"(haystack length {len(haystack)}, from {start_from_pos})"
    )
    return None


def find_text_in_html(
    html_content: str,
    search_text: str,
    start_from_pos: int = 0,
    expected_start: Optional[int] = None,
) -> Optional[TextRange]:
    """
    Locate text inside rendered HTML (or plain text).

    Returns:
        TextRange in haystack coordinates, or None if it could not be located

    Example:
        >>> find_text_in_html("<p>Smith&nbsp;v.&nbsp;Jones</p>", "Smith v. Jones")
        TextRange(start=3, end=27)
    """
    match = locate_text(html_content, search_text, start_from_pos, expected_start)
    return match.range if match else None
