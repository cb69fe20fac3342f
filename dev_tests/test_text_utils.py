"""
Tests for redline.text_utils - Whitespace normalization and text-to-HTML rendering.
"""

import pytest

from redline import PositionMapper, convert_text_to_html, normalize_whitespace
from redline.text_utils import escape_html, has_html_markup, has_redline_markup


class TestNormalizeWhitespace:
    """Tests for normalize_whitespace()."""

    def test_collapses_spaces_and_tabs(self):
        assert normalize_whitespace("  a \t\t b  ") == "a b"

    def test_replaces_non_breaking_spaces(self):
        assert normalize_whitespace("a\u00A0\u00A0b") == "a b"

    def test_keeps_newlines(self):
        assert normalize_whitespace("one\n\ntwo") == "one\n\ntwo"

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_input(self, text):
        assert normalize_whitespace(text) == ""


class TestMarkupDetection:
    """Tests for markup sniffing helpers."""

    def test_detects_tags(self):
        assert has_html_markup("<p>x</p>")
        assert not has_html_markup("a < b")
        assert not has_html_markup("")

    def test_detects_redline_spans(self):
        assert has_redline_markup('<span class="redline-suggestion pending">x</span>')
        assert not has_redline_markup("<span>x</span>")

    def test_escape_html(self):
        assert escape_html('Smith & "Jones" <LLP>') == 'Smith &amp; "Jones" &lt;LLP&gt;'


class TestConvertTextToHtml:
    """Tests for convert_text_to_html()."""

    def test_paragraphs_and_line_breaks(self):
        html = convert_text_to_html("First line\nsecond line\n\nNext & last")
        assert html == "<p>First line<br>second line</p><p>Next &amp; last</p>"

    def test_windows_line_endings_and_empty_paragraphs(self):
        html = convert_text_to_html("One\r\n\r\n\r\n\r\nTwo")
        assert html == "<p>One</p><p>Two</p>"

    def test_existing_markup_is_returned_unchanged(self):
        content = "<p>Already <b>HTML</b></p>"
        assert convert_text_to_html(content) is content

    def test_empty(self):
        assert convert_text_to_html("") == ""

    def test_rendered_html_maps_back_to_text(self):
        """The mapper sees the rendered HTML's visible text, entities decoded."""
        html = convert_text_to_html("Smith & Jones\n\nAgreement")
        mapper = PositionMapper(html)
        assert "Smith & Jones" in mapper.plain_text
        assert "Agreement" in mapper.plain_text
