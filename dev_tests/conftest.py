"""Shared pytest fixtures for the redline engine tests."""

import pytest
from unittest.mock import Mock, patch
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from redline import (
    RedlineSuggestion,
    Severity,
    SuggestionType,
    anchor_text,
    create_redline_document,
)


# ============================================================================
# Sample Texts
# ============================================================================

SCENARIO_TEXT = "Plaintiff alleges fraud.\n\nDefendant denies all claims."

CONTRACT_TEXT = (
    "This Agreement is entered into by the parties named below.\n\n"
    "Ok.\n\n"
    "The Seller shall deliver the goods within thirty days.\n\n"
    "The Buyer shall pay the purchase price upon delivery."
)


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def redline_env():
    """Provide redline environment overrides."""
    env = {
        "REDLINE_MIN_PARAGRAPH_LENGTH": "5",
        "REDLINE_PARTIAL_MATCH_WINDOW": "80",
        "REDLINE_AUTOSAVE_DEBOUNCE_SECONDS": "0.5",
        "REDLINE_STORAGE_PATH": "/tmp/redlines-test",
        "LOG_LEVEL": "debug",
    }
    with patch.dict(os.environ, env, clear=False):
        yield env


# ============================================================================
# Document Fixtures
# ============================================================================

@pytest.fixture
def scenario_anchoring():
    """Anchoring result for the two-paragraph pleading text."""
    return anchor_text(SCENARIO_TEXT)


@pytest.fixture
def contract_anchoring():
    """Anchoring result for a contract with a short paragraph."""
    return anchor_text(CONTRACT_TEXT)


def make_suggestion(suggestion_id, content, original_text, suggested_text, **overrides):
    """Build a pending suggestion addressing the first occurrence of original_text."""
    start = content.index(original_text)
    fields = {
        "id": suggestion_id,
        "type": SuggestionType.GRAMMAR,
        "severity": Severity.MEDIUM,
        "original_text": original_text,
        "suggested_text": suggested_text,
        "explanation": "test suggestion",
        "start_pos": start,
        "end_pos": start + len(original_text),
        "paragraph_id": "P-00001",
    }
    fields.update(overrides)
    return RedlineSuggestion(**fields)


@pytest.fixture
def review_content():
    """Content with distinct words: a at [9, 19), b at [23, 33), c at [34, 40)."""
    return "The firm aaaaaaaaaa is bbbbbbbbbb cccccc."


@pytest.fixture
def review_document(review_content):
    """Document with three pending suggestions over review_content."""
    suggestions = [
        make_suggestion("a", review_content, "aaaaaaaaaa", "AAAAAAAAAAAAAA"),
        make_suggestion(
            "b", review_content, "bbbbbbbbbb", "BB",
            type=SuggestionType.STYLE, severity=Severity.LOW,
        ),
        make_suggestion(
            "c", review_content, "cccccc", "CCCCCC",
            type=SuggestionType.LEGAL, severity=Severity.HIGH,
        ),
    ]
    return create_redline_document(review_content, suggestions, document_id="doc-1")


@pytest.fixture
def failing_persistence():
    """Persistence collaborator whose save always raises."""
    persistence = Mock()
    persistence.save.side_effect = IOError("disk full")
    return persistence
