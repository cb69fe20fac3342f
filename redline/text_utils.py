"""
Redline Text Utilities - Plain text normalization and HTML rendering helpers.

Used to render extracted plain text as HTML for interactive preview, which
is the HTML the position mapper and locators then work against.
"""

import html
import re

_HTML_TAG = re.compile(r"<[^>]+>")
_REDLINE_MARKUP = re.compile(r'class="redline-suggestion')


def normalize_whitespace(text: str) -> str:
    """
    Normalize whitespace in text.

    - Replaces non-breaking spaces with regular spaces
    - Collapses multiple spaces/tabs into single space
    - Strips leading/trailing whitespace

    Newlines are kept so paragraph structure survives.
    """
    if not text:
        return ""
    text = text.replace("\u00A0", " ")
    text = re.sub(r"[ \t]+", " ", text)
    return text.strip()


def escape_html(text: str) -> str:
    """Escape &, < and > so text can be embedded as HTML content."""
    return html.escape(text or "", quote=False)


def has_html_markup(content: str) -> bool:
    """Check whether content contains at least one HTML tag."""
    return bool(content) and _HTML_TAG.search(content) is not None


def has_redline_markup(content: str) -> bool:
    """Check whether content already carries rendered redline spans."""
    return bool(content) and _REDLINE_MARKUP.search(content) is not None


def convert_text_to_html(content: str) -> str:
    """
    Convert plain text to HTML, preserving paragraph structure.

    Content that already contains markup is returned unchanged. Otherwise
    every block separated by a blank line becomes a ``<p>`` element and
    single line breaks inside it become ``<br>``. Empty paragraphs are
    dropped.

    Example:
        >>> convert_text_to_html("First line\\nsecond line\\n\\nNext & last")
        '<p>First line<br>second line</p><p>Next &amp; last</p>'
    """
    if not content:
        return ""
    if has_redline_markup(content) or has_html_markup(content):
        return content

    paragraphs = []
    for paragraph in content.replace("\r\n", "\n").split("\n\n"):
        trimmed = paragraph.strip()
        if not trimmed:
            continue
        paragraphs.append(f"<p>{escape_html(trimmed).replace(chr(10), '<br>')}</p>")
    return "".join(paragraphs)
