"""
Tests for redline.position_mapping - Plain text <-> HTML offsets.

Test Areas:
1. create_position_mapping scan (tags, entities, bare ampersands)
2. map_plain_text_to_html / map_html_to_plain_text, including clamping
3. extract_plain_text and its regex fallback
4. PositionMapper helpers
"""

import pytest
from unittest.mock import patch

from redline import (
    PositionMapper,
    create_position_mapping,
    extract_plain_text,
    map_html_to_plain_text,
    map_plain_text_to_html,
    validate_position_range,
)
from redline.position_mapping import strip_tags


# =============================================================================
# TEST DATA
# =============================================================================

SIMPLE_HTML = "<p>Hello <b>world</b></p>"
ENTITY_HTML = "<p>Smith&nbsp;v.&nbsp;Jones</p>"
AMPERSAND_HTML = "<p>Johnson & Johnson &amp; Co.</p>"

HTML_SAMPLES = [
    SIMPLE_HTML,
    ENTITY_HTML,
    AMPERSAND_HTML,
    "Plain text without any markup.",
    "<div class=\"x\"><p>First</p><p>Second &#169; &#xA9;</p></div>",
    "<p>Line<br>break</p>",
]


# =============================================================================
# TESTS: create_position_mapping
# =============================================================================

class TestCreatePositionMapping:
    """Tests for the single-pass mapping scan."""

    def test_tags_do_not_advance_plain_position(self):
        mapping = create_position_mapping("<b>Hi</b>")
        assert [e.plain_text_pos for e in mapping] == [0, 1]
        assert [e.html_pos for e in mapping] == [3, 4]

    def test_mapping_is_dense(self):
        for html in HTML_SAMPLES:
            mapping = create_position_mapping(html)
            assert [e.plain_text_pos for e in mapping] == list(range(len(mapping)))

    def test_entity_counts_as_one_char_after_semicolon(self):
        mapping = create_position_mapping("a&amp;b")
        assert len(mapping) == 3
        entity = mapping[1]
        assert entity.is_entity
        assert entity.html_pos == 6
        assert entity.entity_length == 5
        assert (entity.html_start, entity.html_end) == (1, 6)

    def test_bare_ampersand_is_ordinary_character(self):
        """A stray '&' must not swallow the rest of the text."""
        mapping = create_position_mapping("Johnson & Johnson")
        assert len(mapping) == len("Johnson & Johnson")
        assert not any(e.is_entity for e in mapping)

    def test_numeric_entities(self):
        mapping = create_position_mapping("&#169;&#xA9;")
        assert len(mapping) == 2
        assert all(e.is_entity for e in mapping)

    def test_empty_html(self):
        assert create_position_mapping("") == []


# =============================================================================
# TESTS: Mapping lookups
# =============================================================================

class TestMappingLookups:
    """Tests for plain -> HTML and HTML -> plain lookups."""

    def test_plain_to_html_direct_lookup(self):
        mapping = create_position_mapping(SIMPLE_HTML)
        # 'w' of 'world' is plain 6, inside <b>
        assert SIMPLE_HTML[map_plain_text_to_html(6, mapping)] == "w"

    def test_plain_to_html_clamps_below_range(self):
        mapping = create_position_mapping(SIMPLE_HTML)
        assert map_plain_text_to_html(-5, mapping) == 0

    def test_plain_to_html_clamps_above_range(self):
        mapping = create_position_mapping(SIMPLE_HTML)
        assert map_plain_text_to_html(999, mapping) == mapping[-1].html_pos

    def test_plain_to_html_empty_mapping(self):
        assert map_plain_text_to_html(3, []) == 0

    def test_html_to_plain_inside_tag_returns_zero(self):
        """Offsets inside a tag have no entry; the documented result is 0."""
        mapping = create_position_mapping(SIMPLE_HTML)
        assert map_html_to_plain_text(1, mapping) == 0
        assert map_html_to_plain_text(SIMPLE_HTML.index("<b>") + 1, mapping) == 0

    @pytest.mark.parametrize("html", HTML_SAMPLES)
    def test_round_trip_outside_tags_and_entities(self, html):
        """plain_to_html(html_to_plain(x)) == x for every mapped HTML offset."""
        mapping = create_position_mapping(html)
        for entry in mapping:
            x = entry.html_pos
            assert map_plain_text_to_html(map_html_to_plain_text(x, mapping), mapping) == x

    def test_validate_position_range(self):
        content = "The quick brown fox"
        assert validate_position_range(content, 4, 9, "quick")
        assert not validate_position_range(content, 4, 9, "slow!")
        assert not validate_position_range(content, 9, 4, "quick")
        assert not validate_position_range(content, 0, 99, content)


# =============================================================================
# TESTS: Plain text extraction
# =============================================================================

class TestExtractPlainText:
    """Tests for DOM extraction and the regex fallback."""

    def test_extracts_and_normalizes_whitespace(self):
        html = "<p>  Hello\n   <b>world</b>  </p>"
        assert extract_plain_text(html) == "Hello world"

    def test_decodes_entities(self):
        assert extract_plain_text(ENTITY_HTML) == "Smith v. Jones"

    def test_empty_input(self):
        assert extract_plain_text("") == ""

    @pytest.mark.parametrize("html", HTML_SAMPLES)
    def test_fallback_agrees_with_parser(self, html):
        assert strip_tags(html) == extract_plain_text(html)

    def test_parser_failure_uses_fallback(self, caplog):
        with patch("redline.position_mapping.BeautifulSoup", side_effect=RuntimeError("boom")):
            with caplog.at_level("WARNING"):
                result = extract_plain_text(SIMPLE_HTML)
        assert result == "Hello world"
        assert "falling back" in caplog.text


# =============================================================================
# TESTS: PositionMapper
# =============================================================================

class TestPositionMapper:
    """Tests for the bound mapper helper."""

    def test_plain_text_decodes_entities_one_char_each(self):
        mapper = PositionMapper(ENTITY_HTML)
        assert mapper.plain_text == "Smith\xa0v.\xa0Jones"
        assert len(mapper) == len(mapper.plain_text)

    def test_html_span_covers_entities(self):
        mapper = PositionMapper(ENTITY_HTML)
        start, end = mapper.html_span(0, len(mapper))
        assert ENTITY_HTML[start:end] == "Smith&nbsp;v.&nbsp;Jones"

    def test_html_span_rejects_empty_or_out_of_range(self):
        mapper = PositionMapper(SIMPLE_HTML)
        assert mapper.html_span(3, 3) is None
        assert mapper.html_span(0, 999) is None

    def test_delegating_lookups(self):
        mapper = PositionMapper(SIMPLE_HTML)
        html_pos = mapper.plain_to_html(0)
        assert SIMPLE_HTML[html_pos] == "H"
        assert mapper.html_to_plain(html_pos) == 0
