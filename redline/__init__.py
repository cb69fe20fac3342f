"""
Redline Module - Land model-proposed corrections on the exact characters they target.

This module provides the self-contained core of the redline review flow:

1. **Anchoring**: paragraph anchor tokens (``⟦P-00001⟧``) inserted once at extraction
2. **Position Mapping**: plain text <-> HTML character offsets
3. **Locating**: exact, case-insensitive, partial-word and mapping-based search
4. **Reconciliation**: anchor + local offset corrections applied safely in one pass
5. **Review Store**: accept / reject / modify lifecycle with offset shifting

Anchoring and reconciliation:
    from redline import anchor_text, CorrectionReconciler

    anchored = anchor_text(raw_text)
    reconciler = CorrectionReconciler(anchored.anchored_text, anchored.anchor_map)
    result = reconciler.reconcile_payload(model_output)
    result.applied_count, result.failed_count

Review:
    from redline import RedlineStore, create_redline_document, suggestions_from_reconciliation

    suggestions = suggestions_from_reconciliation(result, anchored.anchor_map)
    store = RedlineStore(create_redline_document(raw_text, suggestions))
    store.accept(suggestions[0].id)
    store.navigate("next")

Locating text in rendered HTML:
    from redline import find_text_in_html

    find_text_in_html("<p>Smith&nbsp;v.&nbsp;Jones</p>", "Smith v. Jones")
    # TextRange(start=3, end=27)
"""

from .models import (
    # Errors
    RedlineError,
    AnchoringError,
    SuggestionNotFoundError,
    SuggestionStateError,
    SuggestionLocateError,
    PayloadParseError,
    # Addressing
    AnchorEntry,
    PositionMapEntry,
    TextRange,
    # Reconciliation
    Correction,
    CorrectionStatus,
    CorrectionOutcome,
    ReconciliationResult,
    # Review
    SuggestionType,
    Severity,
    SuggestionStatus,
    RedlineSuggestion,
    RedlineMetadata,
    RedlineDocument,
)

from .anchors import (
    ANCHOR_TOKEN_PATTERN,
    ANCHOR_TOKEN_LENGTH,
    AnchorMap,
    AnchoringResult,
    anchor_text,
    build_anchor_map,
    format_anchor_id,
    format_anchor_token,
    has_anchor_tokens,
    normalize_anchor_id,
    strip_anchor_tokens,
)

from .position_mapping import (
    PositionMapper,
    create_position_mapping,
    map_plain_text_to_html,
    map_html_to_plain_text,
    extract_plain_text,
    validate_position_range,
)

from .locators import (
    LocatorStrategy,
    LocatorMatch,
    locate_text,
    find_text_in_html,
)

from .payload_parser import (
    PayloadSchema,
    ParsedPayload,
    PayloadParseFailure,
    parse_correction_payload,
    parse_payload_or_raise,
)

from .reconciler import (
    CorrectionReconciler,
    reconcile_corrections,
    reconcile_payload,
    render_correction_markup,
)

from .converters import (
    suggestions_from_reconciliation,
    suggestions_from_grammar_analysis,
    suggestions_from_citations,
    create_redline_document,
)

from .text_utils import (
    normalize_whitespace,
    escape_html,
    has_html_markup,
    convert_text_to_html,
)

from .persistence import (
    DocumentPersistence,
    JsonFilePersistence,
    DebouncedSaver,
)

from .store import (
    RedlineStore,
    RedlineFilter,
    RedlineEvent,
    RedlineEventKind,
    apply_filters,
    shift_offsets,
)

__all__ = [
    # Errors
    "RedlineError",
    "AnchoringError",
    "SuggestionNotFoundError",
    "SuggestionStateError",
    "SuggestionLocateError",
    "PayloadParseError",
    # Models
    "AnchorEntry",
    "PositionMapEntry",
    "TextRange",
    "Correction",
    "CorrectionStatus",
    "CorrectionOutcome",
    "ReconciliationResult",
    "SuggestionType",
    "Severity",
    "SuggestionStatus",
    "RedlineSuggestion",
    "RedlineMetadata",
    "RedlineDocument",
    # Anchoring
    "ANCHOR_TOKEN_PATTERN",
    "ANCHOR_TOKEN_LENGTH",
    "AnchorMap",
    "AnchoringResult",
    "anchor_text",
    "build_anchor_map",
    "format_anchor_id",
    "format_anchor_token",
    "has_anchor_tokens",
    "normalize_anchor_id",
    "strip_anchor_tokens",
    # Position mapping
    "PositionMapper",
    "create_position_mapping",
    "map_plain_text_to_html",
    "map_html_to_plain_text",
    "extract_plain_text",
    "validate_position_range",
    # Locating
    "LocatorStrategy",
    "LocatorMatch",
    "locate_text",
    "find_text_in_html",
    # Payload parsing
    "PayloadSchema",
    "ParsedPayload",
    "PayloadParseFailure",
    "parse_correction_payload",
    "parse_payload_or_raise",
    # Reconciliation
    "CorrectionReconciler",
    "reconcile_corrections",
    "reconcile_payload",
    "render_correction_markup",
    # Converters
    "suggestions_from_reconciliation",
    "suggestions_from_grammar_analysis",
    "suggestions_from_citations",
    "create_redline_document",
    # Text utilities
    "normalize_whitespace",
    "escape_html",
    "has_html_markup",
    "convert_text_to_html",
    # Persistence
    "DocumentPersistence",
    "JsonFilePersistence",
    "DebouncedSaver",
    # Review store
    "RedlineStore",
    "RedlineFilter",
    "RedlineEvent",
    "RedlineEventKind",
    "apply_filters",
    "shift_offsets",
]

__version__ = "1.0.0"
